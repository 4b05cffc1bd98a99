"""Client side of chapter generation: transport, text sources and draft state."""

from .http import StoryClient, StoryClientError
from .session import CancellationToken, ChapterDraft, ChapterGenerationSession, DraftStatus
from .sources import EventStreamSource, SimulatedStreamSource, TextSource

__all__ = [
    "CancellationToken",
    "ChapterDraft",
    "ChapterGenerationSession",
    "DraftStatus",
    "EventStreamSource",
    "SimulatedStreamSource",
    "StoryClient",
    "StoryClientError",
    "TextSource",
]
