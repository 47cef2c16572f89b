"""Tracking report rendering.

Reports are drawn with rich into a recording console and saved as HTML and
plain text. Each section is rendered independently; a failing section is
logged and left out instead of aborting the whole report.
"""

import io
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from resmon.errors import RenderError
from resmon.formatting import format_bytes
from resmon.logger import get_logger
from resmon.models import SystemDescription
from resmon.stats import ChannelStats
from resmon.tracking import TrackingReport
from resmon.window import ChartHistory

logger = get_logger(__name__)

SPARK_BLOCKS = "▁▂▃▄▅▆▇█"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_STAMP = "%Y%m%d-%H%M%S"


def sparkline(values: Sequence[float], lo: float | None = None, hi: float | None = None) -> str:
    """Draw ``values`` as a one-line block chart scaled to ``[lo, hi]``."""
    if not values:
        return ""
    lo = min(values) if lo is None else lo
    hi = max(values) if hi is None else hi
    span = hi - lo
    if span <= 0:
        return SPARK_BLOCKS[0] * len(values)
    top = len(SPARK_BLOCKS) - 1
    chars = []
    for value in values:
        level = round((min(max(value, lo), hi) - lo) / span * top)
        chars.append(SPARK_BLOCKS[level])
    return "".join(chars)


def _kb(value: float) -> str:
    return f"{value / 1024:.2f}"


class ReportRenderer:
    """
    Renders finished tracking sessions to files under ``output_dir``.

    Args:
        output_dir: Directory the report files are written to.
        history: Chart windows used for the time-series section.
        description: Host identity for the system information section.
        width: Console width in characters.
    """

    def __init__(
        self,
        output_dir: str | Path,
        history: ChartHistory | None = None,
        description: SystemDescription | None = None,
        width: int = 100,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.history = history
        self.description = description
        self.width = width

    def render(self, report: TrackingReport) -> Path:
        """
        Render ``report`` and save it.

        Returns:
            Path of the HTML file. A text copy is saved beside it.

        Raises:
            RenderError: If the files cannot be written.
        """
        console = Console(record=True, file=io.StringIO(), width=self.width)
        sections: list[tuple[str, Callable[[Console, TrackingReport], None]]] = [
            ("title", self._render_title),
            ("system information", self._render_system),
            ("summary", self._render_summary),
            ("charts", self._render_charts),
            ("disk usage", self._render_disks),
            ("top processes", self._render_processes),
            ("graphics", self._render_gpus),
            ("footer", self._render_footer),
        ]
        for name, section in sections:
            try:
                section(console, report)
            except RenderError as e:
                logger.warning("Skipping report section '%s': %s", name, e)
            except (KeyError, TypeError, ValueError, ZeroDivisionError) as e:
                logger.error("Error rendering report section '%s': %s", name, e)

        stamp = datetime.fromtimestamp(report.finished_at).strftime(FILE_STAMP)
        html_path = self.output_dir / f"system-report-{stamp}.html"
        text_path = self.output_dir / f"system-report-{stamp}.txt"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            console.save_text(str(text_path), clear=False)
            console.save_html(str(html_path))
        except OSError as e:
            raise RenderError(f"Could not save report to {self.output_dir}: {e}") from e

        logger.info("Report saved to %s", html_path)
        return html_path

    def _render_title(self, console: Console, report: TrackingReport) -> None:
        start = datetime.fromtimestamp(report.started_at).strftime(TIME_FORMAT)
        end = datetime.fromtimestamp(report.finished_at).strftime(TIME_FORMAT)
        minutes, seconds = divmod(int(report.duration), 60)
        console.print(Text("System Performance Report", style="bold cyan"), justify="center")
        console.print(
            f"Tracking period: {start} - {end} ({minutes}m {seconds:02d}s, "
            f"{report.sample_count} samples)",
            justify="center",
        )
        console.print()

    def _render_system(self, console: Console, report: TrackingReport) -> None:
        info = self.description
        if info is None:
            raise RenderError("no system description received")
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="bold")
        grid.add_column()
        grid.add_row("System", info.display_name)
        grid.add_row("CPU", f"{info.cpu_manufacturer} {info.cpu_brand}".strip() or "Unknown")
        grid.add_row(
            "Cores",
            f"{info.cpu_cores} ({info.cpu_physical_cores} physical) @ {info.cpu_speed_ghz:.2f} GHz",
        )
        grid.add_row("OS", f"{info.os_distro} {info.os_release} ({info.os_arch})".strip())
        grid.add_row("Hostname", info.hostname or "Unknown")
        for gpu in info.graphics:
            grid.add_row("Graphics", f"{gpu.vendor} {gpu.model}".strip())
        console.print(Panel(grid, title="System Information", border_style="cyan"))

    def _render_summary(self, console: Console, report: TrackingReport) -> None:
        stats = report.statistics
        table = Table(title="Performance Summary", box=box.SIMPLE_HEAVY)
        for column in ("Metric", "Average", "Min", "Max", "Current"):
            table.add_column(column, justify="left" if column == "Metric" else "right")

        def add(label: str, channel: ChannelStats, fmt: Callable[[float], str]) -> None:
            table.add_row(
                label, fmt(channel.avg), fmt(channel.min), fmt(channel.max), fmt(channel.current)
            )

        add("CPU Usage (%)", stats.cpu, lambda v: f"{v:.1f}")
        if stats.cpu_temperature.avg > 0:
            add("CPU Temperature (°C)", stats.cpu_temperature, lambda v: f"{v:.1f}")
        add("Memory Usage (%)", stats.memory, lambda v: f"{v:.1f}")
        add("Network RX (KB/s)", stats.network_rx, _kb)
        add("Network TX (KB/s)", stats.network_tx, _kb)
        console.print(table)

    def _render_charts(self, console: Console, report: TrackingReport) -> None:
        history = self.history
        if history is None:
            raise RenderError("no chart history available")
        labels = history.labels.values()
        table = Table(title="Last Minute", box=box.SIMPLE, show_header=False)
        table.add_column("Chart", style="bold")
        table.add_column("Trend", no_wrap=True)
        table.add_column("Peak", justify="right")
        cpu = history.series("cpu")
        memory = history.series("memory")
        rx = history.series("network_rx")
        tx = history.series("network_tx")
        net_peak = max(rx + tx)
        table.add_row("CPU %", Text(sparkline(cpu, 0, 100), style="green"), f"{max(cpu):.1f}")
        table.add_row(
            "Memory %", Text(sparkline(memory, 0, 100), style="cyan"), f"{max(memory):.1f}"
        )
        table.add_row(
            "Net RX", Text(sparkline(rx, 0, net_peak), style="magenta"), format_bytes(max(rx))
        )
        table.add_row(
            "Net TX", Text(sparkline(tx, 0, net_peak), style="yellow"), format_bytes(max(tx))
        )
        console.print(table)
        console.print(f"  {labels[0]} .. {labels[-1]}", style="dim")

    def _render_disks(self, console: Console, report: TrackingReport) -> None:
        disks = [d for d in report.latest.disk if d.size > 0] if report.latest else []
        if not disks:
            return
        table = Table(title="Disk Usage", box=box.SIMPLE_HEAVY)
        table.add_column("Mount")
        table.add_column("Type")
        table.add_column("Size", justify="right")
        table.add_column("Used", justify="right")
        table.add_column("Available", justify="right")
        table.add_column("Use %", justify="right")
        for disk in disks:
            table.add_row(
                disk.label,
                disk.fs_type,
                format_bytes(disk.size),
                format_bytes(disk.used),
                format_bytes(disk.available),
                f"{disk.used_percent:.1f}",
            )
        console.print(table)

    def _render_processes(self, console: Console, report: TrackingReport) -> None:
        processes = report.latest.processes if report.latest else ()
        if not processes:
            return
        table = Table(title="Top Processes", box=box.SIMPLE_HEAVY)
        table.add_column("Name")
        table.add_column("PID", justify="right")
        table.add_column("CPU %", justify="right")
        table.add_column("MEM %", justify="right")
        for proc in processes:
            table.add_row(
                proc.name, str(proc.pid), f"{proc.cpu_percent:.1f}", f"{proc.memory_percent:.1f}"
            )
        console.print(table)

    def _render_gpus(self, console: Console, report: TrackingReport) -> None:
        gpus = report.latest.gpu if report.latest else ()
        if not gpus:
            return
        table = Table(title="Graphics", box=box.SIMPLE_HEAVY)
        table.add_column("Model")
        table.add_column("Util %", justify="right")
        table.add_column("Temp °C", justify="right")
        table.add_column("Memory", justify="right")
        for gpu in gpus:
            memory = "N/A"
            if gpu.memory_used_mb is not None and gpu.memory_total_mb is not None:
                memory = f"{gpu.memory_used_mb:.0f}/{gpu.memory_total_mb:.0f} MB"
            table.add_row(
                f"{gpu.vendor} {gpu.model}".strip(),
                "N/A" if gpu.utilization is None else f"{gpu.utilization:.0f}",
                "N/A" if gpu.temperature is None else f"{gpu.temperature:.0f}",
                memory,
            )
        console.print(table)

    def _render_footer(self, console: Console, report: TrackingReport) -> None:
        console.print(Rule(style="dim"))
        generated = datetime.fromtimestamp(report.finished_at).strftime(TIME_FORMAT)
        console.print(f"Generated by resmon on {generated}", style="dim", justify="center")
