"""Snapshot sampler for resmon.

Issues the sensor queries for one tick concurrently and normalizes their raw
payloads into a ``MetricsSnapshot``. Nothing downstream of this module looks at
raw sensor data.
"""

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Protocol

from resmon.config import COMMAND_WIDTH, TOP_PROCESS_LIMIT
from resmon.errors import SensorError
from resmon.logger import get_logger
from resmon.models import (
    CpuMetrics,
    DiskIO,
    DiskUsage,
    GpuController,
    MemoryMetrics,
    MetricsSnapshot,
    NetworkInterface,
    ProcessInfo,
    SystemDescription,
)

logger = get_logger(__name__)

LOOPBACK_NAMES = frozenset({"lo", "lo0"})


class Sensors(Protocol):
    """The sensor capability the sampler consumes. See ``resmon.sensors``."""

    async def current_load(self) -> Mapping[str, Any]: ...

    async def cpu_temperature(self) -> Mapping[str, Any]: ...

    async def mem(self) -> Mapping[str, Any]: ...

    async def fs_size(self) -> Sequence[Mapping[str, Any]]: ...

    async def disks_io(self) -> Mapping[str, Any]: ...

    async def network_stats(self) -> Sequence[Mapping[str, Any]]: ...

    async def processes(self) -> Mapping[str, Any]: ...

    async def graphics(self) -> Mapping[str, Any]: ...

    async def cpu(self) -> Mapping[str, Any]: ...

    async def system(self) -> Mapping[str, Any]: ...

    async def os_info(self) -> Mapping[str, Any]: ...


def _num(value: Any) -> float:
    return float(value) if value is not None else 0.0


def _opt_num(value: Any) -> float | None:
    # Sensors report "no reading" as None or 0
    return float(value) if value else None


def normalize_cpu(load: Mapping[str, Any], temperature: Mapping[str, Any]) -> CpuMetrics:
    return CpuMetrics(
        current_load=_num(load["currentLoad"]),
        per_core_load=tuple(_num(c["load"]) for c in load.get("cpus", [])),
        temperature=_opt_num(temperature.get("main")),
    )


def normalize_memory(mem: Mapping[str, Any]) -> MemoryMetrics:
    total = int(mem["total"])
    used = int(mem["used"])
    return MemoryMetrics(
        total=total,
        used=used,
        active=int(mem.get("active") or 0),
        available=int(mem.get("available") or 0),
        swap_used=int(mem.get("swapused") or 0),
        used_percent=(used / total) * 100 if total else 0.0,
    )


def normalize_disks(disks: Iterable[Mapping[str, Any]]) -> tuple[DiskUsage, ...]:
    return tuple(
        DiskUsage(
            fs=d.get("fs") or "",
            mount=d.get("mount") or "",
            fs_type=d.get("type") or "",
            size=int(d.get("size") or 0),
            used=int(d.get("used") or 0),
            available=int(d.get("available") or 0),
            used_percent=_num(d.get("use")),
        )
        for d in disks
    )


def normalize_disk_io(disk_io: Mapping[str, Any]) -> DiskIO:
    return DiskIO(
        read_per_sec=_num(disk_io.get("rIO_sec")),
        write_per_sec=_num(disk_io.get("wIO_sec")),
    )


def is_loopback(name: str) -> bool:
    return name in LOOPBACK_NAMES or name.lower().startswith("loopback")


def select_interfaces(stats: Iterable[Mapping[str, Any]]) -> tuple[NetworkInterface, ...]:
    """
    Keep interfaces worth showing.

    Drops loopback devices and interfaces that are idle with nothing received.
    """
    selected = []
    for n in stats:
        name = n.get("iface") or ""
        rx_sec = _num(n.get("rx_sec"))
        tx_sec = _num(n.get("tx_sec"))
        rx_bytes = int(n.get("rx_bytes") or 0)
        if is_loopback(name):
            continue
        if rx_sec <= 0 and tx_sec <= 0 and rx_bytes <= 0:
            continue
        selected.append(
            NetworkInterface(
                name=name,
                rx_per_sec=rx_sec,
                tx_per_sec=tx_sec,
                rx_total=rx_bytes,
                tx_total=int(n.get("tx_bytes") or 0),
            )
        )
    return tuple(selected)


def select_top_processes(
    processes: Iterable[Mapping[str, Any]],
    limit: int = TOP_PROCESS_LIMIT,
    command_width: int = COMMAND_WIDTH,
) -> tuple[ProcessInfo, ...]:
    """
    Rank processes by CPU percent, highest first, and keep ``limit`` of them.

    sorted() is stable, so ties keep the order the sensor listed them in.
    """
    ranked = sorted(processes, key=lambda p: _num(p.get("cpu")), reverse=True)
    return tuple(
        ProcessInfo(
            name=p.get("name") or "",
            pid=int(p.get("pid") or 0),
            cpu_percent=_num(p.get("cpu")),
            memory_percent=_num(p.get("mem")),
            command=(p.get("command") or "")[:command_width],
        )
        for p in ranked[:limit]
    )


def normalize_gpus(controllers: Iterable[Mapping[str, Any]]) -> tuple[GpuController, ...]:
    return tuple(
        GpuController(
            vendor=g.get("vendor") or "",
            model=g.get("model") or "",
            vram_mb=_opt_num(g.get("vram")),
            temperature=_opt_num(g.get("temperatureGpu")),
            utilization=_opt_num(g.get("utilizationGpu")),
            memory_used_mb=_opt_num(g.get("memoryUsed")),
            memory_total_mb=_opt_num(g.get("memoryTotal")),
        )
        for g in controllers
    )


class SnapshotSampler:
    """
    Builds one ``MetricsSnapshot`` per call from a sensor capability.

    psutil measures CPU load since its previous call, so ticks that land close
    together would each see only the sliver since the other's read. With
    ``max_age`` set, a call made within ``max_age`` seconds of the last
    successful snapshot gets that snapshot back, and concurrent calls share
    one in-flight sample. Failures are never reused.
    """

    def __init__(
        self,
        sensors: Sensors,
        process_limit: int = TOP_PROCESS_LIMIT,
        command_width: int = COMMAND_WIDTH,
        clock: Callable[[], float] = time.time,
        max_age: float = 0.0,
    ) -> None:
        self._sensors = sensors
        self._process_limit = process_limit
        self._command_width = command_width
        self._clock = clock
        self._max_age = max_age
        self._latest: MetricsSnapshot | None = None
        self._inflight: asyncio.Future[MetricsSnapshot] | None = None

    async def sample(self) -> MetricsSnapshot:
        """
        Return a snapshot of the host, sharing a recent one when allowed.

        Raises:
            SensorError: If any query fails or returns data that cannot be
                normalized. No partial snapshot is produced.
        """
        if self._max_age <= 0:
            return await self._sample()

        if self._inflight is None:
            latest = self._latest
            if latest is not None and 0 <= self._clock() - latest.timestamp < self._max_age:
                return latest
            self._inflight = asyncio.ensure_future(self._sample())

        task = self._inflight
        try:
            snapshot = await asyncio.shield(task)
        except SensorError:
            self._latest = None
            raise
        finally:
            if self._inflight is task and task.done():
                self._inflight = None
        self._latest = snapshot
        return snapshot

    async def _sample(self) -> MetricsSnapshot:
        s = self._sensors
        try:
            load, temperature, mem, fs, disk_io, net, procs, graphics = await asyncio.gather(
                s.current_load(),
                s.cpu_temperature(),
                s.mem(),
                s.fs_size(),
                s.disks_io(),
                s.network_stats(),
                s.processes(),
                s.graphics(),
            )
        except Exception as e:
            raise SensorError(f"Sensor query failed: {e}") from e

        try:
            return MetricsSnapshot(
                timestamp=self._clock(),
                cpu=normalize_cpu(load, temperature),
                memory=normalize_memory(mem),
                disk=normalize_disks(fs),
                disk_io=normalize_disk_io(disk_io),
                network=select_interfaces(net),
                processes=select_top_processes(
                    procs.get("list", []), self._process_limit, self._command_width
                ),
                gpu=normalize_gpus(graphics.get("controllers", [])),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SensorError(f"Malformed sensor data: {e!r}") from e

    async def describe(self) -> SystemDescription:
        """
        Query the static host identity.

        Raises:
            SensorError: If any identity query fails.
        """
        s = self._sensors
        try:
            cpu, system, os_info, graphics = await asyncio.gather(
                s.cpu(), s.system(), s.os_info(), s.graphics()
            )
            return SystemDescription(
                cpu_manufacturer=cpu.get("manufacturer") or "",
                cpu_brand=cpu.get("brand") or "",
                cpu_cores=int(cpu.get("cores") or 0),
                cpu_physical_cores=int(cpu.get("physicalCores") or 0),
                cpu_speed_ghz=_num(cpu.get("speed")),
                system_manufacturer=system.get("manufacturer") or "",
                system_model=system.get("model") or "",
                os_platform=os_info.get("platform") or "",
                os_distro=os_info.get("distro") or "",
                os_release=os_info.get("release") or "",
                os_arch=os_info.get("arch") or "",
                hostname=os_info.get("hostname") or "",
                graphics=normalize_gpus(graphics.get("controllers", [])),
            )
        except Exception as e:
            raise SensorError(f"System identity query failed: {e}") from e
