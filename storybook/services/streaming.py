"""Turn a sequence of completion deltas into event-stream frames."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Iterator, Optional

from ..chapter_request import GenerationRequest
from ..protocol import (
    Complete,
    Connected,
    Failure,
    Start,
    TextDelta,
    count_words,
    encode_event,
    utc_timestamp,
)

LOGGER = logging.getLogger(__name__)


class ChapterGenerationError(RuntimeError):
    """Raised when a chapter stream cannot be completed."""

    user_message = "AI generation failed. A template chapter is provided instead."


class EmptyCompletion(ChapterGenerationError):
    """Raised when the provider finishes without producing any text."""

    user_message = "The AI returned an empty chapter. A template chapter is provided instead."


class GenerationTimeout(ChapterGenerationError):
    """Raised when a generation runs past its wall-clock budget."""

    user_message = "AI generation took too long. A template chapter is provided instead."


class ChapterEventStream:
    """Iterable of frames for a single chapter generation.

    Each HTTP request owns one instance. The stream always ends with exactly one
    terminal frame: ``complete`` with the generated text, or ``error`` carrying
    a rendered template chapter. If the consumer stops iterating (the client
    disconnected) the upstream delta iterator is closed and nothing more is
    written.

    ``timeout_seconds`` is checked each time a delta arrives. A provider that
    stalls without sending anything is cut off by the completion client's
    per-request timeout instead, so the worst case is the budget plus one
    ``COMPLETION_REQUEST_TIMEOUT``.
    """

    def __init__(
        self,
        generation_request: GenerationRequest,
        open_deltas: Callable[[], Iterable[str]],
        fallback: Callable[[], str],
        *,
        language_name: str,
        pacing_seconds: float = 0.0,
        timeout_seconds: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.generation_request = generation_request
        self.language_name = language_name
        self._open_deltas = open_deltas
        self._fallback = fallback
        self._pacing_seconds = max(0.0, float(pacing_seconds or 0.0))
        self._timeout_seconds = float(timeout_seconds) if timeout_seconds else None
        self._logger = logger or LOGGER
        self._clock = clock
        self._sleep = sleep
        self.disconnected = False

    def __iter__(self) -> Iterator[str]:
        return self.frames()

    def frames(self) -> Iterator[str]:
        request = self.generation_request
        yield encode_event(Connected())

        deltas: Optional[Iterator[str]] = None
        full_content = ""
        try:
            deltas = iter(self._open_deltas())
            yield encode_event(
                Start(
                    chapter_number=request.chapter_number,
                    genre=request.genre,
                    characters=request.characters,
                    language=self.language_name,
                    timestamp=utc_timestamp(),
                )
            )

            started = self._clock()
            for delta in deltas:
                if not delta:
                    continue
                full_content += delta
                yield encode_event(
                    TextDelta(
                        delta=delta,
                        full_content=full_content,
                        word_count=count_words(full_content),
                        language=self.language_name,
                    )
                )
                if self._timeout_seconds and self._clock() - started >= self._timeout_seconds:
                    raise GenerationTimeout(
                        f"Generation exceeded {self._timeout_seconds:g} seconds"
                    )
                if self._pacing_seconds:
                    self._sleep(self._pacing_seconds)

            if not full_content.strip():
                raise EmptyCompletion("Provider stream finished without any text")
        except GeneratorExit:
            self.disconnected = True
            self._logger.info(
                "Client disconnected while streaming chapter %s; stopping generation.",
                request.chapter_number,
            )
            raise
        except Exception as exc:
            self._logger.warning(
                "Streaming chapter %s failed; sending template fallback. Error: %s",
                request.chapter_number,
                exc,
            )
            yield encode_event(
                Failure(
                    message=getattr(exc, "user_message", ChapterGenerationError.user_message),
                    fallback_content=self._fallback(),
                    partial_content=full_content,
                )
            )
            return
        finally:
            _close_quietly(deltas)

        yield encode_event(
            Complete(
                full_content=full_content,
                word_count=count_words(full_content),
                language=self.language_name,
                timestamp=utc_timestamp(),
            )
        )


def _close_quietly(iterator: Optional[Iterator[str]]) -> None:
    close = getattr(iterator, "close", None)
    if not callable(close):
        return
    try:
        close()
    except Exception as exc:  # pragma: no cover - provider cleanup failures are not actionable
        LOGGER.debug("Ignoring error while closing completion stream: %s", exc)
