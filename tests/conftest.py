"""Shared fixtures: a virtual clock, scripted sensors and snapshot builders."""

import inspect
from typing import Any

import pytest

from resmon.errors import TransportError
from resmon.models import (
    CpuMetrics,
    DiskIO,
    DiskUsage,
    MemoryMetrics,
    MetricsSnapshot,
    NetworkInterface,
    ProcessInfo,
)

START_TIME = 1_700_000_000.0


class VirtualTimer:
    """Handle returned by ``VirtualTimerService.call_every``."""

    def __init__(self, interval, callback, name, next_fire, seq) -> None:
        self.interval = interval
        self.callback = callback
        self.name = name
        self.next_fire = next_fire
        self.seq = seq
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class VirtualTimerService:
    """Deterministic timer service; time only moves inside ``advance``."""

    def __init__(self, start: float = START_TIME) -> None:
        self._now = start
        self._timers: list[VirtualTimer] = []

    def now(self) -> float:
        return self._now

    def call_every(self, interval, callback, name=""):
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = VirtualTimer(interval, callback, name, self._now + interval, len(self._timers))
        self._timers.append(timer)
        return timer

    def active(self, prefix: str = "") -> list[VirtualTimer]:
        return [t for t in self._timers if not t.cancelled and t.name.startswith(prefix)]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in time order."""
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.next_fire <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.next_fire, t.seq))
            self._now = timer.next_fire
            timer.next_fire += timer.interval
            result = timer.callback()
            if inspect.isawaitable(result):
                await result
        self._now = target


class FakeSensors:
    """Sensor capability returning scripted payloads."""

    def __init__(self) -> None:
        self.load = {"currentLoad": 25.0, "cpus": [{"load": 20.0}, {"load": 30.0}]}
        self.temperature: dict[str, Any] = {"main": 55.0}
        self.memory = {
            "total": 8_000,
            "used": 2_000,
            "free": 6_000,
            "active": 1_500,
            "available": 6_000,
            "swaptotal": 1_000,
            "swapused": 100,
        }
        self.filesystems = [
            {
                "fs": "/dev/sda1",
                "type": "ext4",
                "mount": "/",
                "size": 100_000,
                "used": 40_000,
                "available": 60_000,
                "use": 40.0,
            }
        ]
        self.disk_io = {"rIO_sec": 512.0, "wIO_sec": 256.0}
        self.network = [
            {"iface": "lo", "rx_sec": 100.0, "tx_sec": 100.0, "rx_bytes": 1_000, "tx_bytes": 1_000},
            {"iface": "eth0", "rx_sec": 2_048.0, "tx_sec": 1_024.0, "rx_bytes": 10_000, "tx_bytes": 5_000},
        ]
        self.process_list = [
            {"pid": 1, "name": "init", "cpu": 0.5, "mem": 0.1, "command": "/sbin/init"},
            {"pid": 42, "name": "python", "cpu": 12.0, "mem": 3.0, "command": "python app.py"},
        ]
        self.controllers: list[dict[str, Any]] = []
        self.identity = {
            "cpu": {
                "manufacturer": "GenuineIntel",
                "brand": "Core i7",
                "cores": 8,
                "physicalCores": 4,
                "speed": 3.2,
            },
            "system": {"manufacturer": "Acme", "model": "Workstation"},
            "os": {
                "platform": "linux",
                "distro": "Debian GNU/Linux",
                "release": "12",
                "arch": "x86_64",
                "hostname": "testhost",
            },
        }
        self.failing: set[str] = set()
        self.calls = 0

    def _check(self, query: str) -> None:
        if query in self.failing:
            raise RuntimeError(f"{query} unavailable")

    async def current_load(self):
        self.calls += 1
        self._check("current_load")
        return self.load

    async def cpu_temperature(self):
        self._check("cpu_temperature")
        return self.temperature

    async def mem(self):
        self._check("mem")
        return self.memory

    async def fs_size(self):
        self._check("fs_size")
        return self.filesystems

    async def disks_io(self):
        self._check("disks_io")
        return self.disk_io

    async def network_stats(self):
        self._check("network_stats")
        return self.network

    async def processes(self):
        self._check("processes")
        return {"all": len(self.process_list), "list": self.process_list}

    async def graphics(self):
        self._check("graphics")
        return {"controllers": self.controllers}

    async def cpu(self):
        self._check("cpu")
        return self.identity["cpu"]

    async def system(self):
        self._check("system")
        return self.identity["system"]

    async def os_info(self):
        self._check("os_info")
        return self.identity["os"]


class FakeChannel:
    """Viewer channel recording every emitted event."""

    def __init__(self, viewer_id: str = "viewer-1") -> None:
        self._viewer_id = viewer_id
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    @property
    def viewer_id(self) -> str:
        return self._viewer_id

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise TransportError("socket closed")
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


def make_snapshot(
    cpu: float = 10.0,
    memory_percent: float = 25.0,
    temperature: float | None = None,
    rx: float = 0.0,
    tx: float = 0.0,
    timestamp: float = START_TIME,
    disks: tuple[DiskUsage, ...] | None = None,
    processes: tuple[ProcessInfo, ...] = (),
) -> MetricsSnapshot:
    """Build a snapshot with the given headline values."""
    if disks is None:
        disks = (make_disk("/"),)
    return MetricsSnapshot(
        timestamp=timestamp,
        cpu=CpuMetrics(current_load=cpu, per_core_load=(cpu, cpu), temperature=temperature),
        memory=MemoryMetrics(
            total=1_000,
            used=int(memory_percent * 10),
            active=0,
            available=1_000 - int(memory_percent * 10),
            swap_used=0,
            used_percent=memory_percent,
        ),
        disk=disks,
        disk_io=DiskIO(read_per_sec=0.0, write_per_sec=0.0),
        network=(NetworkInterface("eth0", rx, tx, 0, 0),),
        processes=processes,
        gpu=(),
    )


def make_disk(mount: str, size: int = 1_000, used: int = 500) -> DiskUsage:
    return DiskUsage(
        fs=f"/dev/{mount.strip('/') or 'root'}",
        mount=mount,
        fs_type="ext4",
        size=size,
        used=used,
        available=size - used,
        used_percent=(used / size * 100) if size else 0.0,
    )


@pytest.fixture
def timers() -> VirtualTimerService:
    return VirtualTimerService()


@pytest.fixture
def sensors() -> FakeSensors:
    return FakeSensors()
