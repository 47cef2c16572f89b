"""Summary statistics over a tracking session's captured records."""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from resmon.models import TrackingRecord


@dataclass(slots=True, frozen=True)
class ChannelStats:
    """Average, extremes and last value of one channel."""

    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    current: float = 0.0

    def to_wire(self) -> dict[str, float]:
        return {"avg": self.avg, "min": self.min, "max": self.max, "current": self.current}


@dataclass(slots=True, frozen=True)
class Statistics:
    """One ``ChannelStats`` per tracked channel."""

    cpu: ChannelStats = ChannelStats()
    cpu_temperature: ChannelStats = ChannelStats()
    memory: ChannelStats = ChannelStats()
    network_rx: ChannelStats = ChannelStats()
    network_tx: ChannelStats = ChannelStats()

    def to_wire(self) -> dict[str, Any]:
        return {
            "cpu": self.cpu.to_wire(),
            "cpuTemp": self.cpu_temperature.to_wire(),
            "memory": self.memory.to_wire(),
            "networkRx": self.network_rx.to_wire(),
            "networkTx": self.network_tx.to_wire(),
        }


def summarize(values: Iterable[float], current: float | None = None) -> ChannelStats:
    """
    Summarize a series of readings.

    Args:
        values: Readings in chronological order.
        current: Value to report as current. Defaults to the last reading.

    Returns:
        All zeros for an empty series.
    """
    data = [float(v) for v in values]
    if not data:
        return ChannelStats()
    lo = min(data)
    hi = max(data)
    # fsum/len can land one ulp outside the observed range
    avg = min(max(math.fsum(data) / len(data), lo), hi)
    return ChannelStats(
        avg=avg,
        min=lo,
        max=hi,
        current=data[-1] if current is None else float(current),
    )


def reduce_records(records: Sequence[TrackingRecord]) -> Statistics:
    """
    Fold captured records into per-channel statistics.

    Recomputed from scratch on every call. Temperature only counts readings
    that are present and above zero; when none qualify the temperature
    channel is all zeros.
    """
    if not records:
        return Statistics()

    latest = records[-1]
    temperatures = [
        r.cpu_temperature for r in records if r.cpu_temperature is not None and r.cpu_temperature > 0
    ]
    if temperatures:
        cpu_temperature = summarize(temperatures, current=latest.cpu_temperature or 0.0)
    else:
        cpu_temperature = ChannelStats()

    return Statistics(
        cpu=summarize(r.cpu_percent for r in records),
        cpu_temperature=cpu_temperature,
        memory=summarize(r.memory_percent for r in records),
        network_rx=summarize(r.network_rx_per_sec for r in records),
        network_tx=summarize(r.network_tx_per_sec for r in records),
    )
