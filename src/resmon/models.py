"""Data models for resmon.

Snapshots are immutable and built once per tick. ``to_wire`` produces the
JSON-friendly dictionaries pushed to viewers, ``from_wire`` rebuilds them on
the viewer side.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def _opt_float(value: Any) -> float | None:
    return None if value is None else float(value)


@dataclass(slots=True, frozen=True)
class CpuMetrics:
    """CPU load for one tick."""

    current_load: float  # percent across all cores
    per_core_load: tuple[float, ...]
    temperature: float | None = None  # Celsius

    def to_wire(self) -> dict[str, Any]:
        return {
            "currentLoad": self.current_load,
            "cores": [{"core": i, "load": load} for i, load in enumerate(self.per_core_load)],
            "temperature": self.temperature,
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "CpuMetrics":
        return CpuMetrics(
            current_load=float(data["currentLoad"]),
            per_core_load=tuple(float(c["load"]) for c in data.get("cores", [])),
            temperature=_opt_float(data.get("temperature")),
        )


@dataclass(slots=True, frozen=True)
class MemoryMetrics:
    """Memory counters in bytes."""

    total: int
    used: int
    active: int
    available: int
    swap_used: int
    used_percent: float  # not clamped, see DESIGN.md

    def to_wire(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "used": self.used,
            "active": self.active,
            "available": self.available,
            "swapUsed": self.swap_used,
            "usedPercent": self.used_percent,
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "MemoryMetrics":
        return MemoryMetrics(
            total=int(data["total"]),
            used=int(data["used"]),
            active=int(data["active"]),
            available=int(data["available"]),
            swap_used=int(data["swapUsed"]),
            used_percent=float(data["usedPercent"]),
        )


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Usage of one mounted filesystem."""

    fs: str
    mount: str
    fs_type: str
    size: int
    used: int
    available: int
    used_percent: float

    @property
    def label(self) -> str:
        return self.mount or self.fs

    def to_wire(self) -> dict[str, Any]:
        return {
            "fs": self.fs,
            "mount": self.mount,
            "type": self.fs_type,
            "size": self.size,
            "used": self.used,
            "available": self.available,
            "usedPercent": self.used_percent,
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "DiskUsage":
        return DiskUsage(
            fs=data.get("fs", ""),
            mount=data.get("mount", ""),
            fs_type=data.get("type", ""),
            size=int(data["size"]),
            used=int(data["used"]),
            available=int(data["available"]),
            used_percent=float(data["usedPercent"]),
        )


@dataclass(slots=True, frozen=True)
class DiskIO:
    """Aggregate disk throughput in bytes per second."""

    read_per_sec: float
    write_per_sec: float

    def to_wire(self) -> dict[str, Any]:
        return {"readPerSec": self.read_per_sec, "writePerSec": self.write_per_sec}

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "DiskIO":
        return DiskIO(
            read_per_sec=float(data["readPerSec"]),
            write_per_sec=float(data["writePerSec"]),
        )


@dataclass(slots=True, frozen=True)
class NetworkInterface:
    """Traffic of one network interface."""

    name: str
    rx_per_sec: float
    tx_per_sec: float
    rx_total: int
    tx_total: int

    def to_wire(self) -> dict[str, Any]:
        return {
            "iface": self.name,
            "rxSec": self.rx_per_sec,
            "txSec": self.tx_per_sec,
            "rxBytes": self.rx_total,
            "txBytes": self.tx_total,
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "NetworkInterface":
        return NetworkInterface(
            name=data["iface"],
            rx_per_sec=float(data["rxSec"]),
            tx_per_sec=float(data["txSec"]),
            rx_total=int(data["rxBytes"]),
            tx_total=int(data["txBytes"]),
        )


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """One entry of the top-processes list."""

    name: str
    pid: int
    cpu_percent: float
    memory_percent: float
    command: str = ""

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "pid": self.pid,
            "cpu": self.cpu_percent,
            "mem": self.memory_percent,
            "command": self.command,
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "ProcessInfo":
        return ProcessInfo(
            name=data["name"],
            pid=int(data["pid"]),
            cpu_percent=float(data["cpu"]),
            memory_percent=float(data["mem"]),
            command=data.get("command", ""),
        )


@dataclass(slots=True, frozen=True)
class GpuController:
    """A graphics controller. Live readings are None when the driver has none."""

    vendor: str
    model: str
    vram_mb: float | None = None
    temperature: float | None = None
    utilization: float | None = None
    memory_used_mb: float | None = None
    memory_total_mb: float | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "vendor": self.vendor,
            "model": self.model,
            "vram": self.vram_mb,
            "temperatureGpu": self.temperature,
            "utilizationGpu": self.utilization,
            "memoryUsed": self.memory_used_mb,
            "memoryTotal": self.memory_total_mb,
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "GpuController":
        return GpuController(
            vendor=data.get("vendor", ""),
            model=data.get("model", ""),
            vram_mb=_opt_float(data.get("vram")),
            temperature=_opt_float(data.get("temperatureGpu")),
            utilization=_opt_float(data.get("utilizationGpu")),
            memory_used_mb=_opt_float(data.get("memoryUsed")),
            memory_total_mb=_opt_float(data.get("memoryTotal")),
        )


@dataclass(slots=True, frozen=True)
class MetricsSnapshot:
    """Everything sampled during one tick."""

    timestamp: float  # seconds since the epoch
    cpu: CpuMetrics
    memory: MemoryMetrics
    disk: tuple[DiskUsage, ...]
    disk_io: DiskIO
    network: tuple[NetworkInterface, ...]
    processes: tuple[ProcessInfo, ...]
    gpu: tuple[GpuController, ...]

    @property
    def network_rx_per_sec(self) -> float:
        return sum(n.rx_per_sec for n in self.network)

    @property
    def network_tx_per_sec(self) -> float:
        return sum(n.tx_per_sec for n in self.network)

    @property
    def network_rx_total(self) -> int:
        return sum(n.rx_total for n in self.network)

    @property
    def network_tx_total(self) -> int:
        return sum(n.tx_total for n in self.network)

    def to_wire(self) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromtimestamp(self.timestamp, timezone.utc).isoformat(),
            "cpu": self.cpu.to_wire(),
            "memory": self.memory.to_wire(),
            "disk": [d.to_wire() for d in self.disk],
            "diskIO": self.disk_io.to_wire(),
            "network": [n.to_wire() for n in self.network],
            "processes": [p.to_wire() for p in self.processes],
            "gpu": [g.to_wire() for g in self.gpu],
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "MetricsSnapshot":
        return MetricsSnapshot(
            timestamp=datetime.fromisoformat(data["timestamp"]).timestamp(),
            cpu=CpuMetrics.from_wire(data["cpu"]),
            memory=MemoryMetrics.from_wire(data["memory"]),
            disk=tuple(DiskUsage.from_wire(d) for d in data.get("disk", [])),
            disk_io=DiskIO.from_wire(data["diskIO"]),
            network=tuple(NetworkInterface.from_wire(n) for n in data.get("network", [])),
            processes=tuple(ProcessInfo.from_wire(p) for p in data.get("processes", [])),
            gpu=tuple(GpuController.from_wire(g) for g in data.get("gpu", [])),
        )


@dataclass(slots=True, frozen=True)
class SystemDescription:
    """Static identity of the host, queried once at startup."""

    cpu_manufacturer: str
    cpu_brand: str
    cpu_cores: int
    cpu_physical_cores: int
    cpu_speed_ghz: float
    system_manufacturer: str
    system_model: str
    os_platform: str
    os_distro: str
    os_release: str
    os_arch: str
    hostname: str
    graphics: tuple[GpuController, ...] = ()

    @classmethod
    def unknown(cls) -> "SystemDescription":
        """Placeholder used when the identity queries fail."""
        return cls(
            cpu_manufacturer="",
            cpu_brand="",
            cpu_cores=0,
            cpu_physical_cores=0,
            cpu_speed_ghz=0.0,
            system_manufacturer="",
            system_model="",
            os_platform="",
            os_distro="",
            os_release="",
            os_arch="",
            hostname="",
        )

    @property
    def display_name(self) -> str:
        name = f"{self.system_manufacturer} {self.system_model}".strip()
        return name or "Unknown System"

    def to_wire(self) -> dict[str, Any]:
        return {
            "cpu": {
                "manufacturer": self.cpu_manufacturer,
                "brand": self.cpu_brand,
                "cores": self.cpu_cores,
                "physicalCores": self.cpu_physical_cores,
                "speed": self.cpu_speed_ghz,
            },
            "system": {
                "manufacturer": self.system_manufacturer,
                "model": self.system_model,
            },
            "os": {
                "platform": self.os_platform,
                "distro": self.os_distro,
                "release": self.os_release,
                "arch": self.os_arch,
                "hostname": self.hostname,
            },
            "graphics": [
                {"vendor": g.vendor, "model": g.model, "vram": g.vram_mb} for g in self.graphics
            ],
        }

    @staticmethod
    def from_wire(data: dict[str, Any]) -> "SystemDescription":
        cpu = data.get("cpu") or {}
        system = data.get("system") or {}
        os_info = data.get("os") or {}
        return SystemDescription(
            cpu_manufacturer=cpu.get("manufacturer", ""),
            cpu_brand=cpu.get("brand", ""),
            cpu_cores=int(cpu.get("cores") or 0),
            cpu_physical_cores=int(cpu.get("physicalCores") or 0),
            cpu_speed_ghz=float(cpu.get("speed") or 0.0),
            system_manufacturer=system.get("manufacturer", ""),
            system_model=system.get("model", ""),
            os_platform=os_info.get("platform", ""),
            os_distro=os_info.get("distro", ""),
            os_release=os_info.get("release", ""),
            os_arch=os_info.get("arch", ""),
            hostname=os_info.get("hostname", ""),
            graphics=tuple(GpuController.from_wire(g) for g in data.get("graphics", [])),
        )


@dataclass(slots=True, frozen=True)
class TrackingRecord:
    """The part of a snapshot a tracking session keeps."""

    timestamp: float
    cpu_percent: float
    cpu_temperature: float | None
    memory_percent: float
    memory_used: int
    memory_total: int
    network_rx_per_sec: float
    network_tx_per_sec: float
    disk: tuple[DiskUsage, ...] = ()
    processes: tuple[ProcessInfo, ...] = ()
    gpu: tuple[GpuController, ...] = ()

    @classmethod
    def from_snapshot(cls, snapshot: MetricsSnapshot) -> "TrackingRecord":
        return cls(
            timestamp=snapshot.timestamp,
            cpu_percent=snapshot.cpu.current_load,
            cpu_temperature=snapshot.cpu.temperature,
            memory_percent=snapshot.memory.used_percent,
            memory_used=snapshot.memory.used,
            memory_total=snapshot.memory.total,
            network_rx_per_sec=snapshot.network_rx_per_sec,
            network_tx_per_sec=snapshot.network_tx_per_sec,
            disk=snapshot.disk,
            processes=snapshot.processes,
            gpu=snapshot.gpu,
        )
