"""tabtop - Main Textual application."""

import argparse
import dataclasses
import logging
import math
from pathlib import Path
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.logging import TextualHandler
from textual.widgets import ContentSwitcher, DataTable, Footer, Sparkline, Static

from tabtop.config import DashboardConfig, dump_default_config, load_config
from tabtop.sampler import RefreshPolicy, Sampler, SamplerWorker, SnapshotFrame
from tabtop.telemetry import PsutilTelemetry, TelemetrySource
from tabtop.views import View, ViewSelector

logger = logging.getLogger(__name__)


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def usage_bar(percent: float, color: str, width: int = 20) -> str:
    """Render a percentage as a bar; out-of-range values are clamped."""
    if not math.isfinite(percent):
        percent = 0.0
    percent = min(max(percent, 0.0), 100.0)
    filled = min(int(percent / 100 * width), width)
    bar = f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (width - filled)
    # Use escaped brackets for the bar container
    return f"\\[{bar}] {percent:5.1f}%"


class TabBar(Static):
    """One-line strip naming every view, the active one highlighted."""

    DEFAULT_CSS = """
    TabBar {
        height: 3;
        border: solid $primary;
        padding: 0 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize TabBar."""
        super().__init__(*args, **kwargs)
        self._active = View.OVERVIEW

    def tab_markup(self, view: View) -> str:
        """Markup for one tab caption, highlighted when active."""
        label = f"{list(View).index(view) + 1} {view.title}"
        return f"[b yellow]{label}[/b yellow]" if view is self._active else label

    def show(self, active: View) -> None:
        """Highlight the active view."""
        self._active = active
        self.update("   ".join(self.tab_markup(view) for view in View))


class OverviewPane(Vertical):
    """CPU and memory gauges plus the disk list."""

    DEFAULT_CSS = """
    OverviewPane #info {
        height: 3;
        border: solid $primary;
        content-align: center middle;
    }

    OverviewPane Horizontal {
        height: auto;
    }

    OverviewPane #cpu-gauge, OverviewPane #mem-gauge {
        width: 1fr;
        border: solid $primary;
        padding: 0 1;
    }

    OverviewPane #disks {
        height: 1fr;
        border: solid $primary;
        padding: 0 1;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose the overview layout."""
        yield Static(
            "[b]System Monitor[/b] | Press [b blue]q[/b blue] to exit | "
            "[b]Tab[/b] to switch tabs",
            id="info",
        )
        yield Horizontal(
            Static("Loading CPU info...", id="cpu-gauge"),
            Static("Loading memory info...", id="mem-gauge"),
        )
        yield Static("", id="disks")

    def update_frame(self, frame: SnapshotFrame) -> None:
        """Redraw the gauges and disk list from a frame."""
        self.query_one("#cpu-gauge", Static).update(
            f"CPU Usage\n{usage_bar(frame.cpu_global, 'green')}"
        )
        self.query_one("#mem-gauge", Static).update(
            f"Memory Usage\n{usage_bar(frame.memory_percent, 'cyan')}\n"
            f"{format_bytes(frame.memory_used)}/{format_bytes(frame.memory_total)}"
        )
        self.query_one("#disks", Static).update(self._disk_lines(frame))

    @staticmethod
    def _disk_lines(frame: SnapshotFrame) -> str:
        if not frame.disks:
            return "Disks\nNo disks reported"
        lines = ["Disks"]
        for disk in frame.disks:
            lines.append(
                f"{disk.label} on {disk.mount_point}: "
                f"Total: {format_bytes(disk.total_bytes)}, "
                f"Available: {format_bytes(disk.available_bytes)}"
            )
        return "\n".join(lines)


class ProcessPane(Container):
    """Table of the busiest processes."""

    DEFAULT_CSS = """
    ProcessPane {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, limit: int = 20, **kwargs) -> None:
        """Initialize ProcessPane."""
        super().__init__(*args, **kwargs)
        self._limit = limit

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name")
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("MEM", key="mem", width=8)

    def update_frame(self, frame: SnapshotFrame) -> None:
        """
        Replace the table rows with the top processes of a frame.

        Rows are rebuilt in frame order so the table keeps the sampler's
        CPU ordering.
        """
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in frame.processes[: self._limit]:
            table.add_row(
                str(proc.pid),
                proc.name[:40],
                f"{proc.cpu_percent:5.1f}",
                format_bytes(proc.memory_bytes),
            )


class NetworkPane(Vertical):
    """Received and transmitted traffic history."""

    DEFAULT_CSS = """
    NetworkPane {
        border: solid $primary;
        padding: 0 1;
    }

    NetworkPane Sparkline {
        height: 1fr;
        margin-bottom: 1;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose the traffic charts."""
        yield Static("Network Traffic (Bytes)", id="net-stats")
        yield Static("RX", classes="net-label")
        yield Sparkline([0.0], summary_function=max, id="rx-spark")
        yield Static("TX", classes="net-label")
        yield Sparkline([0.0], summary_function=max, id="tx-spark")

    def update_frame(self, frame: SnapshotFrame) -> None:
        """Redraw the charts from the frame's history."""
        history = frame.network_history
        rx = [sample.received for sample in history]
        tx = [sample.transmitted for sample in history]
        # Empty history still draws a flat line
        self.query_one("#rx-spark", Sparkline).data = rx or [0.0]
        self.query_one("#tx-spark", Sparkline).data = tx or [0.0]

        if history:
            last = history[-1]
            stats = (
                f"Network Traffic (Bytes)  samples: {len(history)}  "
                f"RX: {format_bytes(last.received)}  TX: {format_bytes(last.transmitted)}  "
                f"peak: {format_bytes(frame.peak_traffic)}"
            )
        else:
            stats = "Network Traffic (Bytes)  no samples yet"
        self.query_one("#net-stats", Static).update(stats)


class TabtopApp(App):
    """Main tabtop application."""

    TITLE = "tabtop"
    SUB_TITLE = "Terminal System Dashboard"

    CSS = """
    Screen {
        layout: vertical;
    }

    ContentSwitcher {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("tab", "next_view", "Next tab", priority=True),
        Binding("shift+tab", "previous_view", "Previous tab", priority=True),
        Binding("right", "next_view", "Next tab", show=False, priority=True),
        Binding("left", "previous_view", "Previous tab", show=False, priority=True),
        Binding("1", "show_view('overview')", "Overview", show=False),
        Binding("2", "show_view('processes')", "Processes", show=False),
        Binding("3", "show_view('network')", "Network", show=False),
    ]

    def __init__(
        self,
        config: DashboardConfig | None = None,
        telemetry: TelemetrySource | None = None,
    ) -> None:
        """Initialize the TabtopApp."""
        super().__init__()
        self._dashboard_config = config if config is not None else DashboardConfig()
        self._sampler = Sampler(
            telemetry if telemetry is not None else PsutilTelemetry(),
            selector=ViewSelector(),
            history_size=self._dashboard_config.history_size,
            refresh_policy=self._dashboard_config.refresh,
        )
        self._update_queue: Queue[SnapshotFrame] = Queue()
        self._sampler_worker: SamplerWorker | None = None
        if self._dashboard_config.background:
            self._sampler_worker = SamplerWorker(
                self._sampler, self._update_queue, poll_rate=self._dashboard_config.tick_interval
            )
        self._latest_frame = self._sampler.frame()

    @property
    def sampler(self) -> Sampler:
        return self._sampler

    @property
    def latest_frame(self) -> SnapshotFrame:
        """The most recent frame drawn."""
        return self._latest_frame

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield TabBar(id="tab-bar")
        with ContentSwitcher(initial=View.OVERVIEW.value):
            yield OverviewPane(id=View.OVERVIEW.value)
            yield ProcessPane(id=View.PROCESSES.value, limit=self._dashboard_config.process_limit)
            yield NetworkPane(id=View.NETWORK.value)
        yield Footer()

    def on_mount(self) -> None:
        """Draw the first frame and start ticking."""
        # Panes set up their own children on mount; draw once they have
        self.call_after_refresh(self._redraw)
        if self._sampler_worker is not None:
            self._sampler_worker.start()
            # Poll the queue faster than the worker fills it
            self.set_interval(min(0.5, self._dashboard_config.tick_interval), self._run_iteration)
        else:
            self.set_interval(self._dashboard_config.tick_interval, self._run_iteration)

    def _run_iteration(self) -> None:
        """One iteration of the outer loop: sample, draw, check for quit."""
        if self._sampler_worker is not None:
            frame = self._drain_queue()
        else:
            self._sampler.tick()
            frame = self._sampler.frame()

        if frame is not None:
            self._latest_frame = frame
            self.render_state(self._sampler.view, frame)

        self._check_quit()

    def _drain_queue(self) -> SnapshotFrame | None:
        """Get the newest frame from the worker, dropping older ones."""
        frame = None
        while True:
            try:
                frame = self._update_queue.get_nowait()
            except Empty:
                return frame

    def render_state(self, view: View, frame: SnapshotFrame) -> None:
        """Draw a frame with the given view active. Never mutates the frame."""
        self.query_one(TabBar).show(view)
        self.query_one(ContentSwitcher).current = view.value
        self.query_one(OverviewPane).update_frame(frame)
        self.query_one(ProcessPane).update_frame(frame)
        self.query_one(NetworkPane).update_frame(frame)

    def _redraw(self) -> None:
        self.render_state(self._sampler.view, self._latest_frame)

    def _check_quit(self) -> None:
        if self._sampler.should_quit:
            if self._sampler_worker is not None:
                self._sampler_worker.stop()
            self.exit()

    def action_next_view(self) -> None:
        """Switch to the tab on the right."""
        self._sampler.selector.advance()
        self._redraw()

    def action_previous_view(self) -> None:
        """Switch to the tab on the left."""
        self._sampler.selector.retreat()
        self._redraw()

    def action_show_view(self, name: str) -> None:
        """Jump to a tab by name."""
        self._sampler.selector.select(View(name))
        self._redraw()

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._sampler.quit()
        self._check_quit()


def configure_logging(level: str, log_file: Path | None = None) -> None:
    """
    Route log records away from the terminal Textual draws on.

    Records go to log_file when given, otherwise to the Textual devtools
    console (``textual console``).
    """
    handler: logging.Handler
    if log_file is not None:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = TextualHandler()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[handler],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabtop",
        description="Tabbed terminal dashboard for CPU, memory, disks, processes and network.",
    )
    parser.add_argument("--config", type=Path, help="path to a TOML config file")
    parser.add_argument("--interval", type=float, help="seconds between samples")
    parser.add_argument(
        "--refresh",
        choices=[policy.value for policy in RefreshPolicy],
        help="refresh all telemetry each tick, or only what the active tab needs",
    )
    parser.add_argument(
        "--background",
        action="store_true",
        default=None,
        help="sample in a background thread",
    )
    parser.add_argument("--log-level", help="logging level, e.g. DEBUG")
    parser.add_argument("--log-file", type=Path, help="write logs to this file")
    parser.add_argument(
        "--print-config",
        action="store_true",
        help="print the default configuration and exit",
    )
    return parser


def apply_overrides(config: DashboardConfig, args: argparse.Namespace) -> DashboardConfig:
    """Apply command-line flags on top of the file configuration."""
    overrides: dict[str, object] = {}
    if args.interval is not None:
        if args.interval <= 0:
            raise SystemExit("tabtop: --interval must be positive")
        overrides["tick_interval"] = args.interval
    if args.refresh is not None:
        overrides["refresh"] = RefreshPolicy(args.refresh)
    if args.background:
        overrides["background"] = True
    if args.log_level:
        level = args.log_level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise SystemExit(f"tabtop: unknown log level: {args.log_level}")
        overrides["log_level"] = level
    if args.log_file is not None:
        overrides["log_file"] = args.log_file
    return dataclasses.replace(config, **overrides)


def main(argv: list[str] | None = None) -> None:
    """Entry point for tabtop application."""
    args = build_parser().parse_args(argv)
    if args.print_config:
        print(dump_default_config(), end="")
        return

    config = apply_overrides(load_config(args.config), args)
    configure_logging(config.log_level, config.log_file)
    logger.info(
        "Starting tabtop: interval=%.1fs refresh=%s background=%s",
        config.tick_interval,
        config.refresh.value,
        config.background,
    )

    app = TabtopApp(config)
    app.run()


if __name__ == "__main__":
    main()
