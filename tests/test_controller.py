import contextlib
import io
import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from procpool.daemon import Daemon
from procpool.demo import DemoDaemon, DemoWorker
from procpool.errors import RunawayForkingError


class _WorkerlessDaemon(Daemon):
    service_name = "workerless"
    service_group = "demo"


class DaemonTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.config_dir = self.root / "config"
        self.config_dir.mkdir()
        (self.config_dir / "demo.ini").write_text(
            "[daemon]\n"
            "num_workers = 2\n"
            "loglevel = 4\n"
            f"logfile = \"{self.root / 'demodaemon.log'}\"\n"
            f"pidfile = \"{self.root / 'demodaemon.pid'}\"\n"
            "author_name = Jane Doe\n"
        )

        setup_logging = patch("procpool.daemon.controller.setup_logging")
        self.setup_logging = setup_logging.start()
        self.addCleanup(setup_logging.stop)

    def patch_pool(self, ticks=(True, False), fatal_error=None) -> MagicMock:
        pool_class = patch("procpool.daemon.controller.WorkerProcessPool").start()
        self.addCleanup(patch.stopall)
        patch("procpool.daemon.controller.time.sleep").start()
        patch("procpool.daemon.controller.setproctitle.setproctitle").start()
        pool = pool_class.return_value
        pool.tick.side_effect = list(ticks)
        pool.fatal_error = fatal_error
        return pool_class


class ExecuteTests(DaemonTestCase):

    def test_help_exits_zero_without_config(self) -> None:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = DemoDaemon(config_dir=self.root / "elsewhere").execute(["-h"])
        self.assertEqual(code, 0)
        self.assertIn("--no-daemon", out.getvalue())
        self.setup_logging.assert_not_called()

    def test_missing_config_exits_one(self) -> None:
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            code = DemoDaemon(config_dir=self.root / "elsewhere").execute(["-n"])
        self.assertEqual(code, 1)
        self.assertIn("Config file not found", err.getvalue())

    def test_loglevel_option_overrides_ini(self) -> None:
        self.patch_pool()
        DemoDaemon(config_dir=self.config_dir).execute(["-n", "--loglevel=7"])

        level, logfile = self.setup_logging.call_args[0]
        self.assertEqual(level, logging.DEBUG)
        self.assertEqual(logfile, self.root / "demodaemon.log")
        self.assertTrue(self.setup_logging.call_args[1]["foreground"])

    def test_ini_loglevel_is_used_by_default(self) -> None:
        self.patch_pool()
        DemoDaemon(config_dir=self.config_dir).execute(["-n"])
        self.assertEqual(self.setup_logging.call_args[0][0], logging.WARNING)

    def test_foreground_run_stops_cleanly(self) -> None:
        pool_class = self.patch_pool()
        daemon = DemoDaemon(config_dir=self.config_dir)

        self.assertEqual(daemon.execute(["-n"]), 0)

        worker, config = pool_class.call_args[0]
        self.assertIsInstance(worker, DemoWorker)
        self.assertEqual(config.get_int("daemon", "num_workers", 1), 2)
        self.assertEqual(pool_class.return_value.tick.call_count, 2)
        pool_class.return_value.restore_signals.assert_called_once()
        self.assertFalse((self.root / "demodaemon.pid").exists())

    def test_fatal_pool_error_exits_one(self) -> None:
        self.patch_pool(ticks=[False], fatal_error=RunawayForkingError(10))
        self.assertEqual(DemoDaemon(config_dir=self.config_dir).execute(["-n"]), 1)

    def test_supervisor_crash_drains_pool(self) -> None:
        pool_class = self.patch_pool(ticks=[RuntimeError("boom")])
        self.assertEqual(DemoDaemon(config_dir=self.config_dir).execute(["-n"]), 1)
        pool_class.return_value.shutdown.assert_called_once()

    def test_daemon_without_worker_exits_one(self) -> None:
        self.patch_pool()
        with contextlib.redirect_stderr(io.StringIO()):
            code = _WorkerlessDaemon(config_dir=self.config_dir).execute(["-n"])
        self.assertEqual(code, 1)


class InvalidConfigTests(DaemonTestCase):

    def write_daemon_section(self, **values) -> None:
        lines = ["[daemon]"] + [f"{key} = {value}" for key, value in values.items()]
        lines.append(f"pidfile = \"{self.root / 'demodaemon.pid'}\"")
        (self.config_dir / "demo.ini").write_text("\n".join(lines) + "\n")
        patch("procpool.daemon.controller.setproctitle.setproctitle").start()
        self.addCleanup(patch.stopall)

    def assert_fails_with_critical(self, setting: str) -> None:
        err = io.StringIO()
        with contextlib.redirect_stderr(err), self.assertLogs("procpool.daemon.controller", level="CRITICAL") as logs:
            code = DemoDaemon(config_dir=self.config_dir).execute(["-n"])

        self.assertEqual(code, 1)
        self.assertIn(setting, logs.output[0])
        self.assertIn(setting, err.getvalue())
        self.assertFalse((self.root / "demodaemon.pid").exists())

    def test_malformed_worker_count(self) -> None:
        self.write_daemon_section(num_workers="three")
        self.assert_fails_with_critical("daemon.num_workers")

    def test_negative_worker_count(self) -> None:
        self.write_daemon_section(num_workers="-1")
        self.assert_fails_with_critical("daemon.num_workers")

    def test_malformed_memory_limit(self) -> None:
        self.write_daemon_section(memory_limit_mb="lots")
        self.assert_fails_with_critical("daemon.memory_limit_mb")


class WriteInitTests(DaemonTestCase):

    def test_write_init_installs_scripts(self) -> None:
        init_dir = self.root / "init.d"
        logrotate_dir = self.root / "logrotate.d"
        init_dir.mkdir()
        logrotate_dir.mkdir()

        with patch("procpool.settings.INIT_SCRIPT_DIR", init_dir), \
                patch("procpool.settings.LOGROTATE_DIR", logrotate_dir):
            code = DemoDaemon(config_dir=self.config_dir).execute(["-w"])

        self.assertEqual(code, 0)
        script = (init_dir / "demodaemon").read_text()
        self.assertIn("# Author: Jane Doe", script)
        self.assertIn(str(self.root / "demodaemon.pid"), script)
        self.assertIn(str(self.root / "demodaemon.log"), (logrotate_dir / "demodaemon").read_text())

    def test_write_init_without_init_dir_fails(self) -> None:
        with patch("procpool.settings.INIT_SCRIPT_DIR", self.root / "missing"):
            self.assertEqual(DemoDaemon(config_dir=self.config_dir).execute(["-w"]), 1)


if __name__ == "__main__":
    unittest.main()
