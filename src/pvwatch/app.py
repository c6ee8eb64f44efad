"""pvwatch - Main Textual application."""

import re
import shlex
import sys
from collections.abc import Sequence

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.events import Key
from textual.timer import Timer
from textual.widgets import Header, Sparkline, Static

from pvwatch.analysis import ProgressSummary, format_duration, rate_series, summarize, time_series
from pvwatch.config import Config, configure_logging, parse_args
from pvwatch.events import Action, AppEvent, SourceFailure, TerminalInput, dispatch
from pvwatch.matchers import RegexMatcher
from pvwatch.models import CommandFailure, CommandResult, Sample
from pvwatch.pipeline import Pipeline

HELP_TEXT = "[bold cyan]       h:[/] Toggle this help window\n[bold cyan]ESC q ^C:[/] Quit"


def format_number(value: float) -> str:
    """Format a sample value without a trailing ``.0``."""
    return f"{value:g}" if abs(value) < 1e15 else f"{value:.4e}"


def value_range(values: Sequence[float]) -> tuple[float, float]:
    """Chart bounds for ``values`` with 10% padding; (0, 1) when empty."""
    if not values:
        return 0.0, 1.0
    low, high = min(values), max(values)
    width = high - low
    return low - width * 0.1, high + width * 0.1


class ChartPane(Container):
    """Value and rate-of-change charts over the sample window."""

    DEFAULT_CSS = """
    ChartPane {
        width: 1fr;
        height: 1fr;
    }

    ChartPane Sparkline {
        height: 1fr;
        margin: 0 1;
    }

    ChartPane .axis {
        height: 1;
        text-style: dim;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ChartPane."""
        super().__init__(*args, **kwargs)
        self._values: list[float] = []
        self._rates: list[float] = []
        self._time_scale: float = 1.0

    def compose(self) -> ComposeResult:
        """Compose the chart layout."""
        yield Static("Value", id="value-label", classes="axis")
        yield Sparkline([], summary_function=max, id="value-chart")
        yield Static(self._get_rate_label(), id="rate-label", classes="axis")
        yield Sparkline([], summary_function=max, id="rate-chart")
        yield Static(self._get_time_label(), id="time-label", classes="axis")

    def update_series(self, samples: Sequence[Sample]) -> None:
        """Recompute both series from a sample snapshot."""
        series = time_series(samples)
        self._values = [value for _, value in series.points]
        self._rates = [rate for _, rate in rate_series(samples)]
        self._time_scale = series.time_scale

        self.query_one("#value-chart", Sparkline).data = self._values
        self.query_one("#rate-chart", Sparkline).data = self._rates
        self.query_one("#rate-label", Static).update(self._get_rate_label())
        self.query_one("#time-label", Static).update(self._get_time_label())

    def _get_rate_label(self) -> str:
        low, high = value_range(self._rates)
        return f"Value/Second  {low:.4e} .. {high:.4e}"

    def _get_time_label(self) -> str:
        return f"Time  {format_duration(self._time_scale)} ago .. now"


class StatusPane(Static):
    """Current value, ETA and a progress gauge."""

    DEFAULT_CSS = """
    StatusPane {
        width: 32;
        height: 1fr;
        padding: 0 1;
        border-top: solid $primary-darken-2;
        border-left: solid $primary-darken-2;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize StatusPane."""
        super().__init__(*args, **kwargs)
        self._summary: ProgressSummary | None = None

    def on_mount(self) -> None:
        self.border_title = "Status"
        self.update(self._get_status_text())

    @property
    def summary(self) -> ProgressSummary | None:
        return self._summary

    def update_summary(self, summary: ProgressSummary | None) -> None:
        """Show ``summary``, or the waiting message when it is None."""
        self._summary = summary
        self.update(self._get_status_text())

    def _get_status_text(self) -> str:
        summary = self._summary
        if summary is None:
            return "[dim]Waiting for more data...[/dim]"

        if summary.eta is None:
            eta = "[dim](unknown)[/dim]"
        else:
            eta = format_duration(summary.eta)

        bar_len = min(int(summary.ratio * 20), 20)
        bar = "[green]█[/green]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)
        return (
            f"{format_number(summary.value)}[dim]/[/dim]{format_number(summary.max)}\n\n"
            f"[dim]ETA[/dim] {eta}\n\n"
            f"\\[{bar}] {summary.ratio * 100:5.1f}%"
        )


class OutputPane(Horizontal):
    """Output of the last run: stdout, stderr and exit status."""

    DEFAULT_CSS = """
    OutputPane {
        height: 1fr;
    }

    OutputPane #stdout, OutputPane #stderr {
        width: 2fr;
        height: 1fr;
        border-top: solid $primary-darken-2;
        border-right: solid $primary-darken-2;
    }

    OutputPane #stderr {
        color: $warning;
    }

    OutputPane #run-status {
        width: 1fr;
        min-width: 20;
        padding: 0 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize OutputPane."""
        super().__init__(*args, **kwargs)
        self._result: CommandResult | None = None

    @property
    def result(self) -> CommandResult | None:
        return self._result

    def compose(self) -> ComposeResult:
        """Compose the output panes."""
        yield Static(id="stdout")
        yield Static(id="stderr")
        yield Static(id="run-status")

    def on_mount(self) -> None:
        self.query_one("#stdout", Static).border_title = "stdout"
        self.query_one("#stderr", Static).border_title = "stderr"

    def update_result(self, result: CommandResult | None) -> None:
        """Show ``result``; an empty stream's pane collapses into the other one."""
        self._result = result
        stdout = self.query_one("#stdout", Static)
        stderr = self.query_one("#stderr", Static)
        status = self.query_one("#run-status", Static)

        if result is None:
            stdout.update("")
            stderr.update("")
            status.update("")
            stdout.display = True
            stderr.display = False
            return

        if isinstance(result, CommandFailure):
            stdout.update("")
            stderr.update("")
            stdout.display = True
            stderr.display = False
            status.update(
                Text.assemble(
                    ("Failed to run the command.\n\n", "red"),
                    (result.error, "dim"),
                )
            )
            return

        status.update(Text(f"The command exited with {result.describe_status()}."))
        stdout.update(Text(result.stdout))
        stderr.update(Text(result.stderr))
        if not result.stderr:
            stdout.display = True
            stderr.display = False
        elif not result.stdout:
            stdout.display = False
            stderr.display = True
        else:
            stdout.display = True
            stderr.display = True


class HelpPanel(Static):
    """Key binding overlay."""

    DEFAULT_CSS = """
    HelpPanel {
        layer: overlay;
        dock: right;
        width: auto;
        height: auto;
        padding: 0 1;
        margin: 1 2;
        border: round $accent;
    }
    """

    def on_mount(self) -> None:
        self.border_title = "Help"


class PvwatchApp(App, inherit_bindings=False):
    """
    Main pvwatch application.

    Keys are forwarded into the pipeline's event channel and handled there,
    together with update and resize events, strictly in arrival order.
    """

    TITLE = "pvwatch"
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
        layout: vertical;
        layers: base overlay;
    }

    #charts {
        height: 1fr;
    }
    """

    def __init__(self, pipeline: Pipeline, poll_rate: float = 0.1) -> None:
        """
        Initialize the PvwatchApp.

        Args:
            pipeline: The monitoring pipeline to start and display.
            poll_rate: How often the event channel is drained (seconds).
        """
        super().__init__()
        self._pipeline = pipeline
        self._poll_rate = poll_rate
        self.show_help = False
        self._exiting = False
        self._event_timer: Timer | None = None
        self.sub_title = shlex.join(pipeline.watcher.command)

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Header()
        yield Horizontal(ChartPane(), StatusPane(), id="charts")
        yield OutputPane()
        yield HelpPanel(HELP_TEXT)

    def on_mount(self) -> None:
        """Start the pipeline and poll its event channel."""
        self.query_one(HelpPanel).display = False
        self._pipeline.start()
        self._event_timer = self.set_interval(self._poll_rate, self._process_events)
        self._redraw()

    def on_key(self, event: Key) -> None:
        """Forward terminal input to the event channel."""
        event.stop()
        self._pipeline.events.emit(TerminalInput(key=event.key))
        self._process_events()

    def _process_events(self) -> None:
        """Handle every queued event in arrival order."""
        if self._exiting:
            return
        for event in self._pipeline.events.drain():
            if not self.handle_event(event):
                break

    def handle_event(self, event: AppEvent) -> bool:
        """Apply one event. Returns False once the app is exiting."""
        action = dispatch(event)
        if action is Action.QUIT:
            self._stop_pipeline()
            self.exit()
            return False
        if action is Action.FAIL and isinstance(event, SourceFailure):
            self._stop_pipeline()
            self.exit(return_code=1, message=f"{event.source}: {event.error}")
            return False
        if action is Action.TOGGLE_HELP:
            self.show_help = not self.show_help
            self.query_one(HelpPanel).display = self.show_help
        elif action is Action.REDRAW:
            self._redraw()
        return True

    def _stop_pipeline(self) -> None:
        """Stop polling and signal the workers; main() joins them after exit."""
        self._exiting = True
        if self._event_timer is not None:
            self._event_timer.stop()
        self._pipeline.request_stop()

    def _redraw(self) -> None:
        """Render the current store and last-result snapshots."""
        if self._exiting:
            return
        samples = self._pipeline.samples()
        result = self._pipeline.last_result()
        try:
            self.query_one(ChartPane).update_series(samples)
            self.query_one(StatusPane).update_summary(summarize(samples))
            self.query_one(OutputPane).update_result(result)
        except NoMatches:
            # Screen not composed yet or already torn down
            return


def build_pipeline(config: Config) -> Pipeline:
    """Create the pipeline described by ``config``."""
    return Pipeline(
        config.command,
        matcher=RegexMatcher(config.pattern),
        interval=config.interval,
        capacity=config.capacity,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the pvwatch application."""
    config = parse_args(argv)
    configure_logging(config)
    try:
        pipeline = build_pipeline(config)
    except (re.error, ValueError) as e:
        print(f"pvwatch: invalid --pattern: {e}", file=sys.stderr)
        return 2

    app = PvwatchApp(pipeline)
    try:
        app.run()
    finally:
        pipeline.close()
    return app.return_code or 0


if __name__ == "__main__":
    sys.exit(main())
