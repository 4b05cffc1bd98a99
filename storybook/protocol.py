"""Wire protocol for streamed chapter generation.

A generation is delivered as a ``text/event-stream`` response made of frames::

    event: <name>
    data: <JSON>
    <blank line>

Five event kinds exist: ``connected``, ``start``, ``text``, ``complete`` and
``error``. A well formed stream carries at most one ``connected``, at most one
``start``, any number of ``text`` frames whose ``fullContent`` never shrinks,
and exactly one terminal frame (``complete`` or ``error``).

Both sides of the connection use this module: the server encodes events with
:func:`encode_event` and clients turn raw response bytes back into events with
:class:`FrameDecoder`, which tolerates arbitrary chunk boundaries.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union

LOGGER = logging.getLogger(__name__)


class ProtocolParseError(ValueError):
    """Raised when a single frame cannot be turned into an event."""


def count_words(text: Optional[str]) -> int:
    """Return the number of whitespace separated, non-empty tokens in ``text``."""

    if not text:
        return 0
    return len(text.split())


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Connected:
    name: ClassVar[str] = "connected"
    status: str = "connected"

    def to_payload(self) -> Dict[str, Any]:
        return {"status": self.status}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Connected":
        return cls(status=str(payload.get("status") or "connected"))


@dataclass(frozen=True)
class Start:
    name: ClassVar[str] = "start"
    chapter_number: int
    genre: str
    characters: str
    language: str
    timestamp: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "chapterNumber": self.chapter_number,
            "genre": self.genre,
            "characters": self.characters,
            "language": self.language,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Start":
        try:
            chapter_number = int(payload.get("chapterNumber") or 1)
        except (TypeError, ValueError) as exc:
            raise ProtocolParseError("start frame carries an invalid chapterNumber") from exc
        return cls(
            chapter_number=chapter_number,
            genre=str(payload.get("genre") or ""),
            characters=str(payload.get("characters") or ""),
            language=str(payload.get("language") or ""),
            timestamp=str(payload.get("timestamp") or ""),
        )


@dataclass(frozen=True)
class TextDelta:
    name: ClassVar[str] = "text"
    delta: str
    full_content: str
    word_count: int
    language: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "delta": self.delta,
            "fullContent": self.full_content,
            "wordCount": self.word_count,
            "language": self.language,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TextDelta":
        full_content = payload.get("fullContent")
        if not isinstance(full_content, str):
            raise ProtocolParseError("text frame is missing fullContent")
        return cls(
            delta=str(payload.get("delta") or ""),
            full_content=full_content,
            word_count=count_words(full_content),
            language=str(payload.get("language") or ""),
        )


@dataclass(frozen=True)
class Complete:
    name: ClassVar[str] = "complete"
    full_content: str
    word_count: int
    language: str = ""
    timestamp: str = ""
    is_ai_generated: bool = True
    message: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "fullContent": self.full_content,
            "wordCount": self.word_count,
            "isAIGenerated": self.is_ai_generated,
            "language": self.language,
            "timestamp": self.timestamp,
        }
        if self.message:
            payload["message"] = self.message
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Complete":
        full_content = payload.get("fullContent")
        if not isinstance(full_content, str):
            raise ProtocolParseError("complete frame is missing fullContent")
        return cls(
            full_content=full_content,
            word_count=count_words(full_content),
            language=str(payload.get("language") or ""),
            timestamp=str(payload.get("timestamp") or ""),
            is_ai_generated=bool(payload.get("isAIGenerated", True)),
            message=payload.get("message") or None,
        )


@dataclass(frozen=True)
class Failure:
    name: ClassVar[str] = "error"
    message: str
    fallback_content: Optional[str] = None
    partial_content: str = ""

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.fallback_content is not None:
            payload["fallback"] = self.fallback_content
        if self.partial_content:
            payload["fullContent"] = self.partial_content
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Failure":
        fallback = payload.get("fallback")
        return cls(
            message=str(payload.get("error") or "Unknown streaming error"),
            fallback_content=fallback if isinstance(fallback, str) and fallback.strip() else None,
            partial_content=str(payload.get("fullContent") or ""),
        )


GenerationEvent = Union[Connected, Start, TextDelta, Complete, Failure]

TERMINAL_EVENTS = (Complete, Failure)

_EVENT_PARSERS: Dict[str, Callable[[Dict[str, Any]], GenerationEvent]] = {
    Connected.name: Connected.from_payload,
    Start.name: Start.from_payload,
    TextDelta.name: TextDelta.from_payload,
    Complete.name: Complete.from_payload,
    Failure.name: Failure.from_payload,
}


def is_terminal(event: GenerationEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


def encode_event(event: GenerationEvent) -> str:
    """Render ``event`` as one event-stream frame."""

    data = json.dumps(event.to_payload(), ensure_ascii=False)
    return f"event: {event.name}\ndata: {data}\n\n"


def parse_frame(event_name: str, data: str) -> GenerationEvent:
    """Build an event from a frame's ``event`` name and joined ``data`` lines.

    Raises :class:`ProtocolParseError` for unknown names and undecodable or
    structurally invalid payloads.
    """

    parser = _EVENT_PARSERS.get(event_name)
    if parser is None:
        raise ProtocolParseError(f"unknown event '{event_name}'")
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ProtocolParseError(f"invalid JSON in '{event_name}' frame: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ProtocolParseError(f"'{event_name}' frame payload must be an object")
    return parser(payload)


class FrameDecoder:
    """Incrementally turn event-stream bytes into :data:`GenerationEvent` objects.

    Bytes may arrive split anywhere, including inside a multi-byte character
    or between the two newlines that end a frame, so input is buffered until a
    blank line closes the frame. Frames that fail to parse are logged and
    dropped; decoding carries on with the next frame.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.dropped_frames = 0

    def feed(self, chunk: Union[bytes, str]) -> List[GenerationEvent]:
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if not text:
            return []
        # A CRLF pair may straddle two chunks, so normalise the whole buffer.
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        return self._drain()

    def flush(self) -> List[GenerationEvent]:
        """Decode whatever is left once the transport reports end of stream."""

        self._buffer += self._decoder.decode(b"", final=True)
        events = self._drain()
        remainder, self._buffer = self._buffer, ""
        if remainder.strip():
            event = self._parse_block(remainder)
            if event is not None:
                events.append(event)
        return events

    def _drain(self) -> List[GenerationEvent]:
        events: List[GenerationEvent] = []
        while "\n\n" in self._buffer:
            block, self._buffer = self._buffer.split("\n\n", 1)
            if not block.strip():
                continue
            event = self._parse_block(block)
            if event is not None:
                events.append(event)
        return events

    def _parse_block(self, block: str) -> Optional[GenerationEvent]:
        event_name = "message"
        data_lines: List[str] = []
        for line in block.split("\n"):
            if not line or line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "event":
                event_name = value.strip()
            elif field == "data":
                data_lines.append(value)

        if not data_lines:
            return None

        try:
            return parse_frame(event_name, "\n".join(data_lines))
        except ProtocolParseError as exc:
            self.dropped_frames += 1
            LOGGER.warning("Dropping undecodable frame: %s", exc)
            return None


__all__ = [
    "Complete",
    "Connected",
    "Failure",
    "FrameDecoder",
    "GenerationEvent",
    "ProtocolParseError",
    "Start",
    "TextDelta",
    "count_words",
    "encode_event",
    "is_terminal",
    "parse_frame",
    "utc_timestamp",
]
