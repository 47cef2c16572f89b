"""Host sensor queries backed by psutil and NVML.

Every query is an async method that runs the blocking psutil call in a worker
thread and returns raw, loosely typed data. ``resmon.sampler`` turns that raw
data into the strict snapshot schema.
"""

import asyncio
import os
import platform
import socket
import threading
import time
from typing import Any

import psutil
from pynvml import (
    NVML_TEMPERATURE_GPU,
    NVMLError,
    nvmlDeviceGetCount,
    nvmlDeviceGetHandleByIndex,
    nvmlDeviceGetMemoryInfo,
    nvmlDeviceGetName,
    nvmlDeviceGetTemperature,
    nvmlDeviceGetUtilizationRates,
    nvmlInit,
)

from resmon.logger import get_logger

logger = get_logger(__name__)

# Sensor chips that report the CPU package temperature, in preference order
CPU_SENSOR_CHIPS = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal", "acpitz")

MB = 1024 * 1024


class RateCounter:
    """
    Turns monotonically increasing byte counters into per-second rates.

    The first observation of a key yields a rate of 0.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._previous: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def rate(self, key: str, value: int) -> float:
        """Record ``value`` for ``key`` and return its rate since the last call."""
        now = self._clock()
        with self._lock:
            previous = self._previous.get(key)
            self._previous[key] = (now, value)
        if previous is None:
            return 0.0
        last_time, last_value = previous
        elapsed = now - last_time
        if elapsed <= 0 or value < last_value:
            # Counter reset (interface re-created) or a clock that did not move
            return 0.0
        return (value - last_value) / elapsed


class PsutilSensors:
    """
    Sensor capability for the local host.

    Queries are independent of each other and may be awaited concurrently.
    Per-process and per-partition access errors are skipped; anything else
    propagates to the caller.
    """

    def __init__(self, rate_counter: RateCounter | None = None) -> None:
        self._rates = rate_counter or RateCounter()
        self._nvml_lock = threading.Lock()
        self._nvml_ready: bool | None = None
        # Prime the non-blocking percent calls (first call returns 0.0)
        psutil.cpu_percent(interval=None)
        psutil.cpu_percent(percpu=True)

    # -- periodic queries -------------------------------------------------

    async def current_load(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._current_load)

    async def cpu_temperature(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._cpu_temperature)

    async def mem(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._mem)

    async def fs_size(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._fs_size)

    async def disks_io(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._disks_io)

    async def network_stats(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._network_stats)

    async def processes(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._processes)

    async def graphics(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._graphics)

    # -- static identity --------------------------------------------------

    async def cpu(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._cpu)

    async def system(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._system)

    async def os_info(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._os_info)

    # -- implementations --------------------------------------------------

    def _current_load(self) -> dict[str, Any]:
        total = psutil.cpu_percent(interval=None)
        per_core = psutil.cpu_percent(percpu=True)
        return {"currentLoad": total, "cpus": [{"load": load} for load in per_core]}

    def _cpu_temperature(self) -> dict[str, Any]:
        read_sensors = getattr(psutil, "sensors_temperatures", None)
        if read_sensors is None:
            # Not exposed on this platform
            return {"main": None}
        chips = read_sensors() or {}
        for chip in CPU_SENSOR_CHIPS:
            for entry in chips.get(chip, []):
                if entry.current:
                    return {"main": entry.current}
        return {"main": None}

    def _mem(self) -> dict[str, Any]:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return {
            "total": mem.total,
            "used": mem.used,
            "free": mem.free,
            "active": getattr(mem, "active", mem.used),
            "available": mem.available,
            "swaptotal": swap.total,
            "swapused": swap.used,
        }

    def _fs_size(self) -> list[dict[str, Any]]:
        disks = []
        for part in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                # Unmounted while iterating, or not readable by this user
                continue
            disks.append(
                {
                    "fs": part.device,
                    "type": part.fstype,
                    "mount": part.mountpoint,
                    "size": usage.total,
                    "used": usage.used,
                    "available": usage.free,
                    "use": usage.percent,
                }
            )
        return disks

    def _disks_io(self) -> dict[str, Any]:
        counters = psutil.disk_io_counters()
        if counters is None:
            return {"rIO_sec": 0.0, "wIO_sec": 0.0, "rIO": 0, "wIO": 0}
        return {
            "rIO_sec": self._rates.rate("disk.read", counters.read_bytes),
            "wIO_sec": self._rates.rate("disk.write", counters.write_bytes),
            "rIO": counters.read_bytes,
            "wIO": counters.write_bytes,
        }

    def _network_stats(self) -> list[dict[str, Any]]:
        stats = []
        for iface, counters in psutil.net_io_counters(pernic=True).items():
            stats.append(
                {
                    "iface": iface,
                    "rx_sec": self._rates.rate(f"net.{iface}.rx", counters.bytes_recv),
                    "tx_sec": self._rates.rate(f"net.{iface}.tx", counters.bytes_sent),
                    "rx_bytes": counters.bytes_recv,
                    "tx_bytes": counters.bytes_sent,
                }
            )
        return stats

    def _processes(self) -> dict[str, Any]:
        """
        Collect every running process.

        process_iter() caches Process objects between calls, so cpu_percent
        measures the interval since the previous tick.
        """
        attrs = ["pid", "name", "cpu_percent", "memory_percent", "cmdline"]
        processes = []

        for proc in psutil.process_iter(attrs=attrs):
            try:
                info = proc.info
                cmdline = info.get("cmdline") or []
                processes.append(
                    {
                        "pid": info.get("pid", 0),
                        "name": info.get("name") or "",
                        "cpu": info.get("cpu_percent") or 0.0,
                        "mem": info.get("memory_percent") or 0.0,
                        "command": " ".join(cmdline) if cmdline else info.get("name") or "",
                    }
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return {"all": len(processes), "list": processes}

    def _ensure_nvml(self) -> bool:
        with self._nvml_lock:
            if self._nvml_ready is None:
                try:
                    nvmlInit()
                    self._nvml_ready = True
                except NVMLError as e:
                    logger.info("NVML not available, GPU metrics disabled: %s", e)
                    self._nvml_ready = False
            return self._nvml_ready

    def _graphics(self) -> dict[str, Any]:
        if not self._ensure_nvml():
            return {"controllers": []}

        controllers = []
        for i in range(nvmlDeviceGetCount()):
            try:
                handle = nvmlDeviceGetHandleByIndex(i)
                name = nvmlDeviceGetName(handle)
                mem = nvmlDeviceGetMemoryInfo(handle)
                util = nvmlDeviceGetUtilizationRates(handle)
                temp = nvmlDeviceGetTemperature(handle, NVML_TEMPERATURE_GPU)
            except NVMLError as e:
                logger.debug("Skipping GPU %d: %s", i, e)
                continue
            if isinstance(name, bytes):
                name = name.decode("utf-8", errors="replace")
            controllers.append(
                {
                    "vendor": "NVIDIA",
                    "model": name,
                    "vram": mem.total / MB,
                    "temperatureGpu": float(temp),
                    "utilizationGpu": float(util.gpu),
                    "memoryUsed": mem.used / MB,
                    "memoryTotal": mem.total / MB,
                }
            )
        return {"controllers": controllers}

    def _cpu(self) -> dict[str, Any]:
        vendor, brand = _read_cpuinfo()
        freq = None
        try:
            freq = psutil.cpu_freq()
        except (NotImplementedError, OSError):
            pass
        return {
            "manufacturer": vendor,
            "brand": brand or platform.processor(),
            "cores": psutil.cpu_count(logical=True) or 0,
            "physicalCores": psutil.cpu_count(logical=False) or 0,
            "speed": round(freq.max / 1000, 2) if freq and freq.max else 0.0,
        }

    def _system(self) -> dict[str, Any]:
        return {
            "manufacturer": _read_text("/sys/class/dmi/id/sys_vendor"),
            "model": _read_text("/sys/class/dmi/id/product_name"),
        }

    def _os_info(self) -> dict[str, Any]:
        distro = platform.system()
        try:
            release = platform.freedesktop_os_release()
            distro = release.get("PRETTY_NAME") or release.get("NAME") or distro
        except OSError:
            if platform.system() == "Darwin":
                distro = f"macOS {platform.mac_ver()[0]}".strip()
            elif platform.system() == "Windows":
                distro = f"Windows {platform.win32_ver()[0]}".strip()
        return {
            "platform": platform.system().lower(),
            "distro": distro,
            "release": platform.release(),
            "arch": platform.machine(),
            "hostname": socket.gethostname(),
        }


def _read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip()
    except OSError:
        return ""


def _read_cpuinfo() -> tuple[str, str]:
    """Return (vendor, model name) from /proc/cpuinfo where it exists."""
    if not os.path.exists("/proc/cpuinfo"):
        return "", ""
    vendor = brand = ""
    try:
        with open("/proc/cpuinfo", "r", encoding="utf-8") as f:
            for line in f:
                key, _, value = line.partition(":")
                key = key.strip()
                if key == "vendor_id" and not vendor:
                    vendor = value.strip()
                elif key == "model name" and not brand:
                    brand = value.strip()
                if vendor and brand:
                    break
    except OSError:
        return "", ""
    return vendor, brand
