"""resmon - Textual dashboard for a resmon server."""

import argparse
from datetime import datetime
from enum import Enum

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.css.query import NoMatches
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Header, Sparkline, Static

from resmon.client import ViewerClient
from resmon.config import Settings
from resmon.errors import TransportError
from resmon.formatting import format_bytes, format_countdown, format_rate
from resmon.logger import get_logger, setup_logging
from resmon.models import DiskUsage, GpuController, MetricsSnapshot, ProcessInfo
from resmon.timers import AsyncioTimerService, TimerService
from resmon.viewer import MetricsViewer
from resmon.window import ChartHistory

logger = get_logger(__name__)

BAR_WIDTH = 20


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"
    NAME = "name"


def usage_bar(percent: float, color: str) -> str:
    """Markup for a fixed-width usage bar."""
    filled = min(max(int(percent / (100 / BAR_WIDTH)), 0), BAR_WIDTH)
    bar = f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (BAR_WIDTH - filled)
    # Escaped bracket so markup does not swallow the bar container
    return f"\\[{bar}]"


class HeaderStats(Static):
    """Header widget showing per-core CPU load and memory."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._snapshot: MetricsSnapshot | None = None

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, snapshot: MetricsSnapshot) -> None:
        self._snapshot = snapshot
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
        except NoMatches:
            pass  # Not mounted yet

    def _get_cpu_info(self) -> str:
        snapshot = self._snapshot
        if snapshot is None:
            return "Waiting for metrics..."
        cpu = snapshot.cpu
        lines = [f"CPU   {usage_bar(cpu.current_load, 'green')} {cpu.current_load:5.1f}%"]
        for i, load in enumerate(cpu.per_core_load):
            lines.append(f"CPU{i:<2} {usage_bar(load, 'green')} {load:5.1f}%")
        if cpu.temperature is not None:
            lines.append(f"Temp  {cpu.temperature:.1f}°C")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        snapshot = self._snapshot
        if snapshot is None or snapshot.memory.total == 0:
            return "Waiting for memory info..."
        mem = snapshot.memory
        return (
            f"Mem {usage_bar(mem.used_percent, 'cyan')} "
            f"{format_bytes(mem.used)}/{format_bytes(mem.total)}\n"
            f"Swap used: {format_bytes(mem.swap_used)}\n"
            f"Disk I/O: read {format_rate(snapshot.disk_io.read_per_sec)}, "
            f"write {format_rate(snapshot.disk_io.write_per_sec)}\n"
            f"Network: down {format_rate(snapshot.network_rx_per_sec)}, "
            f"up {format_rate(snapshot.network_tx_per_sec)}"
        )


class ChartPanel(Vertical):
    """Sparklines bound to the viewer's rolling windows."""

    DEFAULT_CSS = """
    ChartPanel {
        height: auto;
        border: solid $primary;
    }

    ChartPanel .chart-label {
        height: 1;
    }

    ChartPanel Sparkline {
        height: 2;
    }
    """

    CHARTS = (
        ("cpu", "CPU %"),
        ("memory", "Memory %"),
        ("network_rx", "Network down"),
        ("network_tx", "Network up"),
    )

    def compose(self) -> ComposeResult:
        for channel, title in self.CHARTS:
            yield Static(title, id=f"{channel}-label", classes="chart-label")
            yield Sparkline([], summary_function=max, id=f"{channel}-chart")

    def update_charts(self, history: ChartHistory) -> None:
        labels = history.labels.values()
        for channel, title in self.CHARTS:
            values = history.series(channel)
            latest = values[-1]
            shown = format_rate(latest) if channel.startswith("network") else f"{latest:.1f}%"
            self.query_one(f"#{channel}-chart", Sparkline).data = values
            self.query_one(f"#{channel}-label", Static).update(
                f"{title}: {shown}  [dim]{labels[0]} - {labels[-1]}[/dim]"
            )


class DiskTable(Container):
    """Disk usage table, rebuilt when the number of volumes changes."""

    DEFAULT_CSS = """
    DiskTable {
        height: auto;
        max-height: 10;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.rebuilds = 0

    def compose(self) -> ComposeResult:
        yield DataTable(id="disk-table")

    def on_mount(self) -> None:
        table = self.query_one("#disk-table", DataTable)
        table.add_column("Mount", key="mount")
        table.add_column("Type", key="type", width=8)
        table.add_column("Size", key="size", width=10)
        table.add_column("Used", key="used", width=10)
        table.add_column("Use%", key="use", width=7)

    def update_disks(self, volumes: tuple[DiskUsage, ...], rebuild: bool) -> None:
        """Update rows in place, or rebuild them all when ``rebuild`` is set."""
        table = self.query_one("#disk-table", DataTable)
        if rebuild or table.row_count != len(volumes):
            table.clear()
            for i, disk in enumerate(volumes):
                table.add_row(*self._cells(disk), key=str(i))
            self.rebuilds += 1
            return
        for i, disk in enumerate(volumes):
            for column, value in zip(("mount", "type", "size", "used", "use"), self._cells(disk)):
                table.update_cell(str(i), column, value)

    @staticmethod
    def _cells(disk: DiskUsage) -> tuple[str, ...]:
        return (
            disk.label,
            disk.fs_type,
            format_bytes(disk.size),
            format_bytes(disk.used),
            f"{disk.used_percent:5.1f}",
        )


class ProcessTable(Container):
    """Container for the top-processes table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.CPU
        self._sort_reverse: bool = True
        self._processes: tuple[ProcessInfo, ...] = ()

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key, redraw, and return the new key."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        self._sort_reverse = self._sort_key in (SortKey.CPU, SortKey.MEM)
        self.update_processes(self._processes)
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name", width=20)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("MEM%", key="mem", width=7)
        table.add_column("Command", key="command")

    def update_processes(self, processes: tuple[ProcessInfo, ...]) -> None:
        """Replace the rows with ``processes`` in the current sort order."""
        self._processes = processes
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in self._sort_processes(processes):
            table.add_row(
                str(proc.pid),
                proc.name[:20],
                f"{proc.cpu_percent:5.1f}",
                f"{proc.memory_percent:5.1f}",
                proc.command,
            )

    def _sort_processes(self, processes: tuple[ProcessInfo, ...]) -> list[ProcessInfo]:
        key_func = {
            SortKey.CPU: lambda p: p.cpu_percent,
            SortKey.MEM: lambda p: p.memory_percent,
            SortKey.PID: lambda p: p.pid,
            SortKey.NAME: lambda p: p.name.lower(),
        }
        return sorted(processes, key=key_func[self._sort_key], reverse=self._sort_reverse)


class GpuPanel(Static):
    """Graphics controllers, hidden when the host reports none."""

    DEFAULT_CSS = """
    GpuPanel {
        height: auto;
        padding: 0 1;
    }
    """

    def update_gpus(self, gpus: tuple[GpuController, ...]) -> None:
        self.display = bool(gpus)
        lines = []
        for gpu in gpus:
            name = f"{gpu.vendor} {gpu.model}".strip()
            parts = [f"[bold]{name}[/bold]"]
            if gpu.utilization is not None:
                parts.append(f"util {gpu.utilization:.0f}%")
            if gpu.temperature is not None:
                parts.append(f"{gpu.temperature:.0f}°C")
            if gpu.memory_used_mb is not None and gpu.memory_total_mb is not None:
                parts.append(f"mem {gpu.memory_used_mb:.0f}/{gpu.memory_total_mb:.0f} MB")
            lines.append("  ".join(parts))
        self.update("\n".join(lines))


class StatusBar(Static):
    """Connection, error and tracking status line."""

    status_text = ""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $panel;
    }
    """

    def show(self, viewer: MetricsViewer) -> None:
        parts = ["[green]Connected[/green]" if viewer.connected else "[red]Disconnected[/red]"]
        if viewer.last_update is not None:
            parts.append(
                "Last update: " + datetime.fromtimestamp(viewer.last_update).strftime("%H:%M:%S")
            )
        if viewer.error:
            parts.append(f"[red]Error: {viewer.error}[/red]")
        if viewer.tracking.is_active:
            parts.append(
                f"[yellow]Tracking {format_countdown(viewer.tracking.remaining)}[/yellow]"
            )
        elif viewer.last_report_path is not None:
            parts.append(f"Report: {viewer.last_report_path}")
        self.status_text = " | ".join(parts)
        self.update(self.status_text)


class MonitorApp(App):
    """Dashboard for one resmon server."""

    TITLE = "resmon"
    SUB_TITLE = "System Resource Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("t", "start_tracking", "Track 5 min"),
        ("x", "stop_tracking", "Stop tracking"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(
        self,
        viewer: MetricsViewer | None = None,
        client: ViewerClient | None = None,
        timers: TimerService | None = None,
    ) -> None:
        """
        Initialize the MonitorApp.

        Args:
            viewer: State to draw. A fresh one is created when omitted.
            client: Connection feeding ``viewer``. Without one the app only
                draws whatever is pushed into the viewer directly.
            timers: Timer service for the default viewer.
        """
        super().__init__()
        self.viewer = viewer or MetricsViewer(timers or AsyncioTimerService())
        self.client = client

    def compose(self) -> ComposeResult:
        yield Header()
        yield HeaderStats(id="header-stats")
        yield ChartPanel(id="charts")
        yield DiskTable(id="disks")
        yield GpuPanel(id="gpus")
        yield ProcessTable(id="processes")
        yield StatusBar(id="status")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(GpuPanel).display = False
        self.viewer.add_listener(self.refresh_view)
        # Countdown keeps moving between metrics events
        self.set_interval(1.0, self._refresh_status)
        self.refresh_view()
        if self.client is not None:
            self.run_worker(self._connect(), exclusive=True)

    async def _connect(self) -> None:
        try:
            await self.client.connect()
        except TransportError as e:
            logger.error("%s", e)
            self.notify(str(e), severity="error")

    def refresh_view(self) -> None:
        """Redraw every panel from the viewer state."""
        viewer = self.viewer
        try:
            snapshot = viewer.latest
            if snapshot is not None:
                self.query_one(HeaderStats).update_stats(snapshot)
                self.query_one(GpuPanel).update_gpus(snapshot.gpu)
                self.query_one(ProcessTable).update_processes(snapshot.processes)
                self.query_one(DiskTable).update_disks(
                    viewer.disks.volumes, rebuild=viewer.disk_chart_stale
                )
                viewer.disk_chart_stale = False
            self.query_one(ChartPanel).update_charts(viewer.history)
            if viewer.description is not None:
                self.sub_title = f"{viewer.description.display_name} ({viewer.description.hostname})"
            self._refresh_status()
        except NoMatches:
            pass  # Screen is being torn down

    def _refresh_status(self) -> None:
        try:
            self.query_one(StatusBar).show(self.viewer)
        except NoMatches:
            pass

    def action_start_tracking(self) -> None:
        if self.viewer.start_tracking():
            self.notify("Tracking started for 5 minutes")
        else:
            self.notify("Tracking already in progress", severity="warning")

    def action_stop_tracking(self) -> None:
        report = self.viewer.stop_tracking()
        if report is None:
            self.notify("No tracking session in progress", severity="warning")
        elif self.viewer.last_report_path is not None:
            self.notify(f"Report saved to {self.viewer.last_report_path}")
        else:
            self.notify("Report could not be saved", severity="error")

    def action_sort(self) -> None:
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    async def action_quit(self) -> None:
        self.viewer.remove_listener(self.refresh_view)
        self.viewer.tracking.cancel()
        if self.client is not None:
            await self.client.disconnect()
        self.exit()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Terminal dashboard for a resmon server.")
    parser.add_argument("--config", help="JSON settings file")
    parser.add_argument("--server-url", help="URL of the resmon server")
    parser.add_argument("--report-dir", help="Directory for tracking reports")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, ...)")
    parser.add_argument("--log-file", help="Log file path (default: resmon.log)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the resmon dashboard."""
    args = parse_args(argv)
    settings = Settings.load(args.config).with_overrides(
        server_url=args.server_url,
        report_dir=args.report_dir,
        log_level=args.log_level,
        log_file=args.log_file,
    )
    # The terminal belongs to Textual
    setup_logging(
        settings.log_level,
        settings.log_file or "resmon.log",
        console=False,
        extra_handlers=[TextualHandler()],
    )

    viewer = MetricsViewer(
        AsyncioTimerService(),
        capacity=settings.window_capacity,
        tracking_duration=settings.tracking_duration,
        report_dir=settings.report_dir,
    )
    app = MonitorApp(viewer=viewer, client=ViewerClient(settings.server_url, viewer))
    app.run()


if __name__ == "__main__":
    main()
