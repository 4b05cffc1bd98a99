"""Sources of incremental chapter text.

The session consumes every generation through the same interface, whether the
events come from a live event stream or are replayed from text that is
already known (template chapters, non-streaming providers).
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, List, Optional, Union

from ..protocol import (
    Complete,
    Connected,
    FrameDecoder,
    GenerationEvent,
    Start,
    TextDelta,
    count_words,
    utc_timestamp,
)

if TYPE_CHECKING:  # pragma: no cover
    from .session import CancellationToken

LOGGER = logging.getLogger(__name__)

_WORD_BOUNDARY = re.compile(r"(?<=\s)(?=\S)")


class TextSource:
    """Base class for anything the session can consume."""

    def events(self, token: "CancellationToken") -> Iterator[GenerationEvent]:
        raise NotImplementedError

    def close(self) -> None:
        """Release transport resources; safe to call more than once."""


class EventStreamSource(TextSource):
    """Decode events from raw event-stream byte chunks as they arrive."""

    def __init__(
        self,
        chunks: Iterable[Union[bytes, str]],
        *,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._chunks = chunks
        self._on_close = on_close
        self._closed = False
        self.decoder = FrameDecoder()

    def events(self, token: "CancellationToken") -> Iterator[GenerationEvent]:
        for chunk in self._chunks:
            if token.cancelled:
                return
            if not chunk:
                continue
            for event in self.decoder.feed(chunk):
                yield event
        if token.cancelled:
            return
        for event in self.decoder.flush():
            yield event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close()


class SimulatedStreamSource(TextSource):
    """Reveal known text step by step so it looks like a live stream.

    ``granularity`` is ``"word"`` (each step adds one word plus the whitespace
    after it) or ``"character"``. ``step_delay`` is the pause between steps
    in seconds; cancellation interrupts the pause.
    """

    def __init__(
        self,
        content: str,
        *,
        step_delay: float = 0.03,
        granularity: str = "word",
        chapter_number: int = 1,
        genre: str = "",
        characters: str = "",
        language: str = "",
        is_ai_generated: bool = False,
        message: Optional[str] = None,
    ) -> None:
        if granularity not in ("word", "character"):
            raise ValueError("granularity must be 'word' or 'character'")
        self.content = content or ""
        self.step_delay = step_delay
        self.granularity = granularity
        self.chapter_number = chapter_number
        self.genre = genre
        self.characters = characters
        self.language = language
        self.is_ai_generated = is_ai_generated
        self.message = message

    def steps(self) -> List[str]:
        if not self.content:
            return []
        if self.granularity == "character":
            return list(self.content)
        return [piece for piece in _WORD_BOUNDARY.split(self.content) if piece]

    def events(self, token: "CancellationToken") -> Iterator[GenerationEvent]:
        yield Connected()
        yield Start(
            chapter_number=self.chapter_number,
            genre=self.genre,
            characters=self.characters,
            language=self.language,
            timestamp=utc_timestamp(),
        )

        revealed = ""
        for index, piece in enumerate(self.steps()):
            if index and token.wait(self.step_delay):
                return
            if token.cancelled:
                return
            revealed += piece
            yield TextDelta(
                delta=piece,
                full_content=revealed,
                word_count=count_words(revealed),
                language=self.language,
            )

        yield Complete(
            full_content=self.content,
            word_count=count_words(self.content),
            language=self.language,
            timestamp=utc_timestamp(),
            is_ai_generated=self.is_ai_generated,
            message=self.message,
        )
