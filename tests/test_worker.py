"""Tests for the worker run-loop, its guards and the process title."""

import os
import re
import signal
import threading
import unittest
from unittest.mock import MagicMock, patch

from procpool.config import ServiceConfig
from procpool.supervisor import process_utils
from procpool.worker import ProcessTitle, StopReason, Worker, WorkerPhase


class _ScriptedWorker(Worker):
    """A worker whose probes return scripted values and which counts its callbacks."""

    iteration_delay = 0
    memory_limit_mb = 1

    def __init__(self, memory=(), parent_alive=(), max_runs=None, **kwargs) -> None:
        kwargs.setdefault("title_setter", None)
        super().__init__(**kwargs)
        self.memory = list(memory)
        self.parent_alive = list(parent_alive)
        self.max_runs = max_runs
        self.calls = {"setup": 0, "run": 0, "cleanup": 0}

    def setup(self) -> None:
        self.calls["setup"] += 1

    def run(self) -> None:
        self.calls["run"] += 1
        if self.max_runs is not None and self.calls["run"] >= self.max_runs:
            self.stop()

    def cleanup(self) -> None:
        self.calls["cleanup"] += 1

    def memory_usage(self) -> int:
        return self.memory.pop(0) if self.memory else 1024

    def is_parent_alive(self) -> bool:
        return self.parent_alive.pop(0) if self.parent_alive else True


class _FailingWorker(_ScriptedWorker):
    def run(self) -> None:
        super().run()
        raise RuntimeError("boom")


class WorkerLoopTests(unittest.TestCase):

    def test_stop_after_runs_is_graceful(self) -> None:
        worker = _ScriptedWorker(max_runs=3)

        self.assertTrue(worker.execute())

        self.assertEqual(worker.calls, {"setup": 1, "run": 3, "cleanup": 1})
        self.assertEqual(worker.phase, WorkerPhase.TERMINATED)
        self.assertEqual(worker.stop_reason, StopReason.REQUESTED)

    def test_memory_limit_stops_without_further_work(self) -> None:
        limit = _ScriptedWorker.memory_limit_mb * 1024 * 1024
        worker = _ScriptedWorker(memory=[1024, 2048, limit + 1, 1024, 1024])

        with self.assertLogs(level="WARNING") as logs:
            self.assertTrue(worker.execute())

        self.assertEqual(worker.calls["run"], 2)
        self.assertEqual(worker.calls["cleanup"], 1)
        self.assertEqual(worker.stop_reason, StopReason.MEMORY_LIMIT)
        self.assertTrue(any("Memory limit of 1MB exceeded" in line for line in logs.output))

    def test_memory_exactly_at_limit_stops(self) -> None:
        worker = _ScriptedWorker(memory=[_ScriptedWorker.memory_limit_mb * 1024 * 1024])
        worker.execute()
        self.assertEqual(worker.calls["run"], 0)
        self.assertEqual(worker.stop_reason, StopReason.MEMORY_LIMIT)

    def test_orphaned_worker_stops_without_sleeping(self) -> None:
        worker = _ScriptedWorker(parent_alive=[True, False])
        worker.iteration_delay = 30

        with patch("procpool.worker.worker.time.sleep") as sleep_mock:
            worker.execute()

        self.assertEqual(worker.calls["run"], 1)
        self.assertEqual(sleep_mock.call_count, 1)
        self.assertEqual(worker.stop_reason, StopReason.ORPHANED)
        self.assertEqual(worker.calls["cleanup"], 1)

    def test_orphaned_on_first_iteration_does_no_work(self) -> None:
        worker = _ScriptedWorker(parent_alive=[False])
        worker.iteration_delay = 30

        with patch("procpool.worker.worker.time.sleep") as sleep_mock:
            worker.execute()

        self.assertEqual(worker.calls["run"], 0)
        sleep_mock.assert_not_called()

    def test_signal_stops_at_next_iteration(self) -> None:
        worker = _ScriptedWorker()

        def run_then_signal() -> None:
            worker.calls["run"] += 1
            worker.signal_handler(signal.SIGTERM, None)

        worker.run = run_then_signal
        worker.execute()

        self.assertEqual(worker.calls["run"], 1)
        self.assertEqual(worker.stop_reason, StopReason.SIGNAL)
        self.assertFalse(worker.is_running)

    def test_signal_pending_before_start_stops_gracefully(self) -> None:
        before = signal.getsignal(signal.SIGTERM)
        worker = _ScriptedWorker()

        with process_utils.blocked_signals([signal.SIGTERM]):
            worker.install_signal_handlers()
            signal.pthread_kill(threading.get_ident(), signal.SIGTERM)
        self.assertEqual(worker.stop_reason, StopReason.SIGNAL)

        self.assertTrue(worker.execute())
        self.assertEqual(worker.calls, {"setup": 1, "run": 0, "cleanup": 1})
        self.assertEqual(signal.getsignal(signal.SIGTERM), before)

    def test_signal_handlers_are_restored_after_execute(self) -> None:
        before = signal.getsignal(signal.SIGTERM)
        worker = _ScriptedWorker(max_runs=1)
        worker.execute()
        self.assertEqual(signal.getsignal(signal.SIGTERM), before)

    def test_exception_in_run_propagates_after_cleanup(self) -> None:
        worker = _FailingWorker()

        with self.assertRaises(RuntimeError):
            worker.execute()

        self.assertEqual(worker.calls["run"], 1)
        self.assertEqual(worker.calls["cleanup"], 1)
        self.assertEqual(worker.phase, WorkerPhase.TERMINATED)

    def test_parent_probe_without_parent(self) -> None:
        worker = _ScriptedWorker()
        self.assertIsNone(worker.parent_pid)
        self.assertTrue(Worker.is_parent_alive(worker))

    def test_parent_probe_uses_recorded_pid(self) -> None:
        worker = _ScriptedWorker()
        worker.set_parent(os.getpid())
        with patch("procpool.worker.worker.psutil.pid_exists", return_value=False) as pid_exists:
            self.assertFalse(Worker.is_parent_alive(worker))
        pid_exists.assert_called_once_with(os.getpid())

    def test_memory_limit_from_config(self) -> None:
        config = ServiceConfig.from_dict({"daemon": {"memory_limit_mb": "64", "iteration_delay": "0.5"}})
        worker = _ScriptedWorker(config=config)
        self.assertEqual(worker.memory_limit_bytes, 64 * 1024 * 1024)
        self.assertEqual(worker.iteration_delay, 0.5)

        worker.set_memory_limit(32)
        self.assertEqual(worker.memory_limit_bytes, 32 * 1024 * 1024)

    def test_memory_usage_reads_own_process(self) -> None:
        worker = _ScriptedWorker()
        self.assertGreater(Worker.memory_usage(worker), 0)


class MemoryLoggingTests(unittest.TestCase):

    def test_info_heartbeat_is_rate_limited(self) -> None:
        worker = _ScriptedWorker(max_runs=3)

        with self.assertLogs(level="DEBUG") as logs:
            worker.execute()

        memory_lines = [line for line in logs.output if "memory in use" in line]
        self.assertEqual(len(memory_lines), 3)
        self.assertTrue(all(line.startswith("DEBUG") for line in memory_lines))

    def test_info_heartbeat_when_interval_elapsed(self) -> None:
        worker = _ScriptedWorker(max_runs=2)
        worker.memory_log_interval = 0

        with self.assertLogs(level="INFO") as logs:
            worker.execute()

        info_lines = [line for line in logs.output if "memory in use" in line]
        self.assertEqual(len(info_lines), 2)
        self.assertTrue(all(f"Child {os.getpid()}" in line for line in info_lines))


class ProcessTitleTests(unittest.TestCase):

    def test_title_format(self) -> None:
        title = ProcessTitle("demo worker", started_at=0, setter=MagicMock())
        text = title.format(2048 * 1024)
        self.assertRegex(
            text, r"^\S+ demo worker \[2048 KB used, started \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\]$"
        )

    def test_title_is_rate_limited(self) -> None:
        setter = MagicMock()
        title = ProcessTitle("role", started_at=0, setter=setter, update_interval=120)

        self.assertTrue(title.update(1024, now=1000))
        self.assertFalse(title.update(1024, now=1100))
        self.assertTrue(title.update(1024, now=1120))
        self.assertEqual(setter.call_count, 2)

    def test_worker_refreshes_title_once_per_interval(self) -> None:
        setter = MagicMock()
        worker = _ScriptedWorker(max_runs=3, title_setter=setter)
        worker.execute()

        setter.assert_called_once()
        (text,), _ = setter.call_args
        self.assertTrue(re.search(r" _ScriptedWorker \[1 KB used, started ", text))

    def test_worker_without_title_capability(self) -> None:
        worker = _ScriptedWorker(max_runs=2, title_setter=None)
        self.assertTrue(worker.execute())
        self.assertEqual(worker.calls["run"], 2)


if __name__ == "__main__":
    unittest.main()
