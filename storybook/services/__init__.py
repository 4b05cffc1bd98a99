"""Service layer helpers for AI-assisted chapter workflows."""

from __future__ import annotations

from .availability import ai_available, ai_status  # noqa: F401
from .chapter_generation import (  # noqa: F401
    ChapterGenerationResult,
    generate_chapter_content,
    start_chapter_generation,
)
from .streaming import (  # noqa: F401
    ChapterEventStream,
    ChapterGenerationError,
    EmptyCompletion,
    GenerationTimeout,
)
from .templates import generate_template_chapter  # noqa: F401

__all__ = [
    "ChapterEventStream",
    "ChapterGenerationError",
    "ChapterGenerationResult",
    "EmptyCompletion",
    "GenerationTimeout",
    "ai_available",
    "ai_status",
    "generate_chapter_content",
    "generate_template_chapter",
    "start_chapter_generation",
]
