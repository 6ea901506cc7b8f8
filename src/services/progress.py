"""
Stage-transition progress events emitted by the pipeline.

A progress sink is any callable taking a ProgressEvent. It is called
synchronously at each stage boundary, so a slow sink slows the pipeline.

ProgressRecorder is a sink that keeps the ordered event sequence, so a
caller can iterate it (any number of times), poll it by index, or
subscribe callbacks that fire in emission order.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Callable, Iterator, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.pipeline import PipelineState

# Stage-boundary steps in emission order for a successful run
PIPELINE_STEPS = (
    "extracting",
    "extracted",
    "validating",
    "validated",
    "scoring",
    "scored",
    "formatting",
    "formatted",
    "complete",
)
TERMINAL_STEPS = ("complete", "failed", "canceled")


@dataclass
class ProgressEvent:
    """
    One stage transition.

    ``state`` is the live PipelineState of the run, not a copy; reading it
    inside the sink shows the record as it is at that boundary.
    """

    step: str
    message: str
    state: Optional["PipelineState"] = None
    timestamp: Optional[str] = None

    def __post_init__(self):
        """Set timestamp if not provided"""
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    @property
    def is_terminal(self) -> bool:
        return self.step in TERMINAL_STEPS

    def to_dict(self, include_state: bool = False) -> dict:
        data = {"step": self.step, "message": self.message, "timestamp": self.timestamp}
        if include_state and self.state is not None:
            data["state"] = self.state.model_dump(mode="json", by_alias=True)
        return data


ProgressSink = Callable[[ProgressEvent], None]


class ProgressRecorder:
    """
    Progress sink that records every event in order.

    Usage:
        recorder = ProgressRecorder()
        recorder.subscribe(lambda event: print(event.step))
        state = await orchestrator.run(image, recorder)
        [event.step for event in recorder]
    """

    def __init__(self):
        self._events: list[ProgressEvent] = []
        self._subscribers: list[ProgressSink] = []

    def __call__(self, event: ProgressEvent) -> None:
        self._events.append(event)
        for subscriber in self._subscribers:
            subscriber(event)

    def __iter__(self) -> Iterator[ProgressEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)

    def subscribe(self, callback: ProgressSink) -> None:
        self._subscribers.append(callback)

    def since(self, index: int) -> list[ProgressEvent]:
        """Events emitted after the first ``index`` events (for polling)."""
        return self._events[index:]

    @property
    def steps(self) -> list[str]:
        return [event.step for event in self._events]

    @property
    def finished(self) -> bool:
        return bool(self._events) and self._events[-1].is_terminal
