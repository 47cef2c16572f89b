"""Fixed-capacity chart history for live display."""

import time
from collections import deque
from collections.abc import Callable, Iterator, Sequence
from datetime import datetime

from resmon.config import WINDOW_CAPACITY
from resmon.models import DiskUsage, MetricsSnapshot

CHANNELS = ("cpu", "memory", "network_rx", "network_tx")
LABEL_FORMAT = "%H:%M:%S"


def format_label(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime(LABEL_FORMAT)


class RollingWindow:
    """
    Sliding window that is always exactly ``capacity`` long.

    Starts full of ``fill`` values; every push evicts the oldest entry.
    Iterates oldest first.
    """

    def __init__(self, capacity: int = WINDOW_CAPACITY, fill: float | str = 0.0) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._values: deque[float | str] = deque([fill] * capacity, maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._values.maxlen

    @property
    def latest(self) -> float | str:
        return self._values[-1]

    def push(self, value: float | str) -> None:
        self._values.append(value)

    def values(self) -> list[float | str]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[float | str]:
        return iter(self._values)


class ChartHistory:
    """
    Windows for every live chart plus the shared x-axis labels.

    Initial labels count backward from now at one second spacing, so the
    charts start with a full, zero-valued minute.
    """

    def __init__(
        self,
        capacity: int = WINDOW_CAPACITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        now = clock()
        self.labels = RollingWindow(capacity, fill="")
        for i in range(capacity - 1, -1, -1):
            self.labels.push(format_label(now - i))
        self._channels = {name: RollingWindow(capacity, fill=0.0) for name in CHANNELS}

    @property
    def capacity(self) -> int:
        return self.labels.capacity

    @property
    def cpu(self) -> RollingWindow:
        return self._channels["cpu"]

    @property
    def memory(self) -> RollingWindow:
        return self._channels["memory"]

    @property
    def network_rx(self) -> RollingWindow:
        return self._channels["network_rx"]

    @property
    def network_tx(self) -> RollingWindow:
        return self._channels["network_tx"]

    def series(self, name: str) -> list[float]:
        """Values of one channel, oldest first."""
        return self._channels[name].values()

    def push(self, values: dict[str, float], label: str) -> None:
        """
        Append one value per channel and one label.

        Raises:
            KeyError: If ``values`` is missing a channel; nothing is pushed.
        """
        row = [float(values[name]) for name in CHANNELS]
        for name, value in zip(CHANNELS, row):
            self._channels[name].push(value)
        self.labels.push(label)

    def push_snapshot(self, snapshot: MetricsSnapshot) -> None:
        """Append a received snapshot, labelled with the local arrival time."""
        self.push(
            {
                "cpu": snapshot.cpu.current_load,
                "memory": snapshot.memory.used_percent,
                "network_rx": snapshot.network_rx_per_sec,
                "network_tx": snapshot.network_tx_per_sec,
            },
            format_label(self._clock()),
        )


class DiskUsageView:
    """
    Latest disk usage, replaced wholesale rather than windowed.

    ``update`` reports when the number of volumes changed, meaning any chart
    bound to the view has to be rebuilt instead of updated in place.
    """

    def __init__(self) -> None:
        self._volumes: tuple[DiskUsage, ...] = ()
        self._built = False

    @property
    def volumes(self) -> tuple[DiskUsage, ...]:
        return self._volumes

    def update(self, disks: Sequence[DiskUsage]) -> bool:
        """
        Replace the volumes from a snapshot's disk list.

        Returns:
            True if a bound chart must be rebuilt. Snapshots with no disk
            data leave the view unchanged and return False.
        """
        volumes = tuple(d for d in disks if d.size > 0)
        if not disks:
            return False
        rebuild = not self._built or len(volumes) != len(self._volumes)
        self._volumes = volumes
        self._built = True
        return rebuild
