import time
import psutil
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ProcessRecord:
    """Bookkeeping for one live child."""

    pid: int
    spawned_at: float = field(default_factory=time.monotonic)
    #: Handle used to signal and wait for the child; None if it vanished before one was taken.
    process: Optional[psutil.Process] = None

    def age(self, now: Optional[float] = None) -> float:
        """Seconds since the child was spawned."""
        return (time.monotonic() if now is None else now) - self.spawned_at


@dataclass
class PoolState:
    """
    The supervisor's view of its children.

    `records` keeps insertion order, so the first entries are always the
    children that have been running longest. `exiting` only ever goes from
    False to True.
    """

    desired_count: int
    records: Dict[int, ProcessRecord] = field(default_factory=dict)
    quick_termination_count: int = 0
    exiting: bool = False

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, pid: int) -> bool:
        return pid in self.records

    def add(self, pid: int, process: Optional[psutil.Process] = None) -> ProcessRecord:
        record = ProcessRecord(pid, process=process)
        self.records[pid] = record
        return record

    def remove(self, pid: int) -> Optional[ProcessRecord]:
        return self.records.pop(pid, None)

    def oldest(self, count: int) -> List[ProcessRecord]:
        """Returns up to `count` records, oldest registered first."""
        return list(self.records.values())[:max(count, 0)]

    def pids(self) -> List[int]:
        return list(self.records)

    def processes(self) -> List[psutil.Process]:
        """Handles of every tracked child that has one."""
        return [record.process for record in self.records.values() if record.process is not None]
