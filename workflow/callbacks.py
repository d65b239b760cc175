"""Progress and analysis callbacks for monitoring and real-time reporting."""

import logging
from typing import Callable, Optional, Protocol, runtime_checkable

from rich.markup import escape

from models.enums import AnalysisState, EventTopic, ProgressStatus
from models.events import AnalysisChunk, AnalysisStatusEvent, ProgressEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class DownloadCallback(Protocol):
    """Receives ``download-progress`` events of a job, in emission order."""

    def on_progress(self, event: ProgressEvent) -> None:
        ...


@runtime_checkable
class AnalysisCallback(Protocol):
    """Receives the events of one streaming analysis request."""

    def on_chunk(self, chunk: AnalysisChunk) -> None:
        """Called once per streamed fragment, in arrival order."""
        ...

    def on_status(self, event: AnalysisStatusEvent) -> None:
        """Called on Started, Done and Failed."""
        ...


_PROGRESS_LEVELS = {
    ProgressStatus.RUNNING: logging.INFO,
    ProgressStatus.COMPLETED: logging.INFO,
    ProgressStatus.SKIPPED: logging.WARNING,
    ProgressStatus.ERROR: logging.ERROR,
}


class LoggingCallback:
    """Lightweight callback that logs events to the standard logger."""

    def on_progress(self, event: ProgressEvent) -> None:
        logger.log(_PROGRESS_LEVELS[event.status], "[%s] %s", event.status.value, event.message)

    def on_chunk(self, chunk: AnalysisChunk) -> None:
        logger.debug("chunk: %d chars", len(chunk.chunk))

    def on_status(self, event: AnalysisStatusEvent) -> None:
        level = logging.ERROR if event.status is AnalysisState.FAILED else logging.INFO
        logger.log(level, "Analysis %s: %s", event.status.value, event.message)


class CollectingCallback:
    """Records every event in order."""

    def __init__(self):
        self.progress: list[ProgressEvent] = []
        self.chunks: list[AnalysisChunk] = []
        self.statuses: list[AnalysisStatusEvent] = []

    def on_progress(self, event: ProgressEvent) -> None:
        self.progress.append(event)

    def on_chunk(self, chunk: AnalysisChunk) -> None:
        self.chunks.append(chunk)

    def on_status(self, event: AnalysisStatusEvent) -> None:
        self.statuses.append(event)

    @property
    def text(self) -> str:
        return "".join(c.chunk for c in self.chunks)

    def messages(self, status: Optional[ProgressStatus] = None) -> list[str]:
        return [e.message for e in self.progress if status is None or e.status is status]


class TopicEmitterCallback:
    """Turns typed events into ``(topic, payload)`` pairs for an event channel.

    Args:
        emit: Fire-and-forget sink, e.g. a host's event bus.
    """

    def __init__(self, emit: Callable[[str, dict], None]):
        self._emit = emit

    def on_progress(self, event: ProgressEvent) -> None:
        self._emit(EventTopic.DOWNLOAD_PROGRESS.value, event.to_payload())

    def on_chunk(self, chunk: AnalysisChunk) -> None:
        self._emit(EventTopic.AI_ANALYSIS.value, chunk.to_payload())

    def on_status(self, event: AnalysisStatusEvent) -> None:
        self._emit(EventTopic.AI_ANALYSIS_STATUS.value, event.to_payload())


class RichProgressCallback:
    """Renders download progress and streamed analysis in the terminal."""

    _STATUS_STYLES: dict[ProgressStatus, str] = {
        ProgressStatus.RUNNING: "cyan",
        ProgressStatus.COMPLETED: "green",
        ProgressStatus.SKIPPED: "yellow",
        ProgressStatus.ERROR: "red",
    }

    def __init__(self, console=None):
        """
        Args:
            console: Rich Console instance. Creates one if not provided.
        """
        self._console = console
        self._progress = None
        self._task_id = None
        self.completed = 0
        self.skipped = 0
        self.errors = 0

    @property
    def console(self):
        if self._console is None:
            from rich.console import Console
            self._console = Console()
        return self._console

    def start(self):
        """Start the progress display. Call before running a job."""
        from rich.progress import Progress, SpinnerColumn, TextColumn

        self._progress = Progress(
            SpinnerColumn("dots"),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
        )
        self._progress.start()
        self._task_id = self._progress.add_task("等待开始...", total=None)

    def stop(self):
        """Stop the progress display."""
        if self._progress:
            self._progress.stop()
            self._progress = None

    def on_progress(self, event: ProgressEvent) -> None:
        if event.status is ProgressStatus.COMPLETED:
            self.completed += 1
        elif event.status is ProgressStatus.SKIPPED:
            self.skipped += 1
        elif event.status is ProgressStatus.ERROR:
            self.errors += 1

        style = self._STATUS_STYLES[event.status]
        if self._progress and event.status is ProgressStatus.RUNNING:
            self._progress.update(self._task_id, description=f"[{style}]{escape(event.message)}[/]")
            return
        # Outcomes stay in the scrollback
        self.console.print(f"  [{style}]{escape(event.message)}[/]", highlight=False)

    def on_chunk(self, chunk: AnalysisChunk) -> None:
        self.console.print(chunk.chunk, end="", markup=False, highlight=False)

    def on_status(self, event: AnalysisStatusEvent) -> None:
        if event.status is AnalysisState.STARTED:
            self.console.print(f"[dim]{event.message}[/]")
        elif event.status is AnalysisState.DONE:
            self.console.print(f"\n[bold green]{event.message}[/]")
        elif event.status is AnalysisState.FAILED:
            self.console.print(f"\n[red]{escape(event.message)}[/]", highlight=False)
