from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

REQUIRED_FIELDS = ("prompt", "genre", "characters", "setting")
PREVIOUS_CHAPTER_EXCERPT_CHARS = 200


class GenerationRequestError(RuntimeError):
    """Raised when a chapter generation request body is invalid."""


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    genre: str
    characters: str
    setting: str
    chapter_number: int = 1
    previous_chapters_summary: str = ""
    language_code: str = "en"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerationRequest":
        """Validate a JSON request body using the camelCase wire keys."""

        values = {field: _clean_text(payload.get(field)) for field in REQUIRED_FIELDS}
        if not all(values.values()):
            raise GenerationRequestError("Missing required fields")

        chapter_number = _parse_chapter_number(payload.get("chapterNumber"))
        language = _clean_text(payload.get("language")) or "en"

        return cls(
            prompt=values["prompt"],
            genre=values["genre"],
            characters=values["characters"],
            setting=values["setting"],
            chapter_number=chapter_number,
            previous_chapters_summary=_clean_text(payload.get("previousChapters")),
            language_code=language.lower(),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "prompt": self.prompt,
            "genre": self.genre,
            "characters": self.characters,
            "setting": self.setting,
            "chapterNumber": self.chapter_number,
            "language": self.language_code,
        }
        if self.previous_chapters_summary:
            payload["previousChapters"] = self.previous_chapters_summary
        return payload


def summarize_previous_chapters(
    chapters: Iterable[Mapping[str, Any]],
    *,
    excerpt_chars: int = PREVIOUS_CHAPTER_EXCERPT_CHARS,
) -> str:
    """Return the truncated ``Chapter <n>: <excerpt>...`` lines sent as prior context."""

    lines = []
    for chapter in chapters:
        number = chapter.get("chapterNumber") or chapter.get("chapter_number")
        content = str(chapter.get("content") or "")
        lines.append(f"Chapter {number}: {content[:excerpt_chars]}...")
    return "\n".join(lines)


def _clean_text(value: Optional[Any]) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return value.strip()


def _parse_chapter_number(raw: Any) -> int:
    if raw is None or raw == "":
        return 1
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise GenerationRequestError("chapterNumber must be a positive integer")
    try:
        number = int(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise GenerationRequestError("chapterNumber must be a positive integer") from exc
    if number < 1:
        raise GenerationRequestError("chapterNumber must be a positive integer")
    return number
