"""Client-side state machine for one chapter draft.

A :class:`ChapterGenerationSession` owns a single :class:`ChapterDraft` and
drives it from one :class:`~storybook.client.sources.TextSource` at a time::

    idle -> connecting -> streaming -> complete | failed -> idle (reset)

Cancelling before a terminal event returns the draft to ``idle`` and discards
its text. Observers registered with :meth:`ChapterGenerationSession.subscribe`
receive a snapshot of the draft after every transition.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..protocol import (
    Complete,
    Connected,
    Failure,
    GenerationEvent,
    Start,
    TextDelta,
    count_words,
    is_terminal,
)
from .sources import SimulatedStreamSource, TextSource

LOGGER = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "idle": "",
    "connecting": "Connecting to the story generator...",
    "streaming": "Writing your chapter...",
    "complete": "Chapter ready.",
    "failed": "AI generation was unavailable. A template chapter was provided.",
}


class DraftStatus(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ChapterDraft:
    accumulated_text: str = ""
    status: DraftStatus = DraftStatus.IDLE
    cancelled: bool = False
    message: Optional[str] = None
    is_ai_generated: Optional[bool] = None

    @property
    def word_count(self) -> int:
        return count_words(self.accumulated_text)

    @property
    def status_message(self) -> str:
        return self.message or STATUS_MESSAGES[self.status.value]

    @property
    def is_terminal(self) -> bool:
        return self.status in (DraftStatus.COMPLETE, DraftStatus.FAILED)


class CancellationToken:
    """Thread-safe, idempotent cancellation flag with close callbacks."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Trip the token; returns ``False`` when it was already cancelled."""

        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:  # pragma: no cover - releasing a dead transport
                LOGGER.debug("Ignoring error from cancellation callback: %s", exc)
        return True

    def register(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""

        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns ``True`` if cancelled meanwhile."""

        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


SourceFactory = Callable[[CancellationToken], TextSource]
Observer = Callable[[ChapterDraft], None]


class ChapterGenerationSession:
    def __init__(self, *, fallback_step_delay: float = 0.0) -> None:
        self.draft = ChapterDraft()
        self.fallback_step_delay = fallback_step_delay
        self._observers: List[Observer] = []
        self._lock = threading.RLock()
        self._token: Optional[CancellationToken] = None

    # ---------------- observers ----------------
    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = dataclasses.replace(self.draft)
        for observer in list(self._observers):
            observer(snapshot)

    # ---------------- lifecycle ----------------
    @property
    def in_flight(self) -> bool:
        return self._token is not None

    def run(
        self,
        open_source: SourceFactory,
        *,
        fallback: Optional[Callable[[], str]] = None,
    ) -> ChapterDraft:
        """Consume one generation to its end and return the resulting draft.

        ``open_source`` receives the cancellation token for this run so the
        transport can be aborted. When the source fails, ends without a
        terminal event, or completes empty, the text from ``fallback`` is
        played back through a simulated stream and the draft ends ``failed``.
        """

        with self._lock:
            if self._token is not None:
                raise RuntimeError("A generation is already in flight for this draft.")
            token = CancellationToken()
            self._token = token
            self.draft = ChapterDraft()

        source: Optional[TextSource] = None
        failure_reason: Optional[str] = None
        try:
            source = open_source(token)
            failure_reason = self._consume(source, token)
        except Exception as exc:
            if not token.cancelled:
                LOGGER.warning("Chapter generation transport failed: %s", exc)
                failure_reason = "The story generator could not be reached."
        finally:
            if source is not None:
                source.close()

        try:
            if failure_reason and not token.cancelled and fallback is not None:
                self._play_fallback(fallback, failure_reason, token)
            elif failure_reason and not token.cancelled:
                self._apply(Failure(message=failure_reason), token)
        finally:
            with self._lock:
                self._token = None
        return self.draft

    def _consume(self, source: TextSource, token: CancellationToken) -> Optional[str]:
        """Feed events into the draft; return a failure reason needing a fallback."""

        for event in source.events(token):
            if token.cancelled:
                return None
            if isinstance(event, Complete) and not event.full_content.strip():
                return "The story generator returned an empty chapter."
            if isinstance(event, Failure) and not (
                event.fallback_content
                or event.partial_content.strip()
                or self.draft.accumulated_text.strip()
            ):
                return event.message
            self._apply(event, token)
            if is_terminal(event):
                return None
        if token.cancelled:
            return None
        LOGGER.warning("Chapter stream ended without a terminal event.")
        return "The connection closed before the chapter was finished."

    def _play_fallback(self, fallback: Callable[[], str], reason: str, token: CancellationToken) -> None:
        content = fallback()
        playback = SimulatedStreamSource(content, step_delay=self.fallback_step_delay, is_ai_generated=False)
        for event in playback.events(token):
            if token.cancelled:
                return
            if isinstance(event, Complete):
                self._apply(
                    Failure(message=reason, fallback_content=event.full_content),
                    token,
                )
                return
            self._apply(event, token)

    def _apply(self, event: GenerationEvent, token: CancellationToken) -> None:
        with self._lock:
            if token.cancelled or token is not self._token:
                return
            draft = self.draft
            if isinstance(event, Connected):
                draft.status = DraftStatus.CONNECTING
            elif isinstance(event, Start):
                draft.status = DraftStatus.STREAMING
                draft.accumulated_text = ""
            elif isinstance(event, TextDelta):
                draft.status = DraftStatus.STREAMING
                draft.accumulated_text = event.full_content
            elif isinstance(event, Complete):
                draft.status = DraftStatus.COMPLETE
                draft.accumulated_text = event.full_content
                draft.is_ai_generated = event.is_ai_generated
                draft.message = event.message
            elif isinstance(event, Failure):
                draft.status = DraftStatus.FAILED
                if event.fallback_content:
                    draft.accumulated_text = event.fallback_content
                elif event.partial_content and len(event.partial_content) > len(draft.accumulated_text):
                    draft.accumulated_text = event.partial_content
                draft.is_ai_generated = False
                draft.message = event.message
            else:  # pragma: no cover - every protocol event is handled above
                raise TypeError(f"Unhandled generation event: {event!r}")
            self._notify()

    def cancel(self) -> bool:
        """Abort the in-flight generation; a no-op once finished or already cancelled."""

        with self._lock:
            token = self._token
            if token is None or self.draft.is_terminal:
                return False
            if not token.cancel():
                return False
            self.draft = ChapterDraft(cancelled=True)
            self._notify()
        return True

    def reset(self) -> None:
        """Clear a finished draft (after saving or discarding it)."""

        with self._lock:
            if self._token is not None:
                raise RuntimeError("Cancel the running generation before resetting the draft.")
            self.draft = ChapterDraft()
            self._notify()
