"""Persistence helpers for stories and their chapters."""

from __future__ import annotations

import random
from typing import Any, List, Mapping, Optional

from ..extensions import db
from ..models import Chapter, Story
from .languages import LANGUAGE_CONFIGS

COVER_COLORS = (
    "from-purple-400 to-pink-400",
    "from-blue-400 to-cyan-400",
    "from-green-400 to-emerald-400",
    "from-orange-400 to-red-400",
    "from-indigo-400 to-purple-400",
    "from-teal-400 to-blue-400",
)

# Wire key -> model attribute for fields a client may change after creation.
_UPDATABLE_FIELDS = {
    "title": "title",
    "genre": "genre",
    "characters": "characters",
    "setting": "setting",
    "theme": "theme",
    "coverColor": "cover_color",
    "language": "language",
}


class StoryStoreError(RuntimeError):
    """Raised when a story or chapter payload is invalid."""


def list_stories() -> List[Story]:
    return Story.query.order_by(Story.created_at.desc(), Story.id.desc()).all()


def get_story(story_id: int) -> Optional[Story]:
    return db.session.get(Story, story_id)


def create_story(fields: Mapping[str, Any]) -> Story:
    genre = _clean(fields.get("genre"))
    characters = _clean(fields.get("characters"))
    setting = _clean(fields.get("setting"))
    if not (genre and characters and setting):
        raise StoryStoreError("Please fill in all required fields (Genre, Characters, and Setting)")

    story = Story(
        title=_clean(fields.get("title")) or f"A {genre} Story",
        genre=genre,
        characters=characters,
        setting=setting,
        theme=_clean(fields.get("theme")) or None,
        cover_color=_clean(fields.get("coverColor")) or random.choice(COVER_COLORS),
        language=_language_code(fields.get("language")),
    )
    db.session.add(story)
    db.session.commit()
    return story


def update_story(story_id: int, patch: Mapping[str, Any]) -> Optional[Story]:
    story = get_story(story_id)
    if story is None:
        return None

    for wire_key, attribute in _UPDATABLE_FIELDS.items():
        if wire_key not in patch:
            continue
        value = _clean(patch.get(wire_key))
        if attribute in {"title", "genre", "characters", "setting"} and not value:
            raise StoryStoreError(f"'{wire_key}' cannot be empty.")
        if attribute == "language":
            value = _language_code(value)
        setattr(story, attribute, value or None)

    db.session.commit()
    return story


def create_chapter(story_id: int, fields: Mapping[str, Any]) -> Optional[Chapter]:
    story = get_story(story_id)
    if story is None:
        return None

    content = _clean(fields.get("content"))
    if not content:
        raise StoryStoreError("Chapter content cannot be empty.")

    raw_number = fields.get("chapterNumber")
    if raw_number in (None, ""):
        chapter_number = story.next_chapter_number
    else:
        if isinstance(raw_number, bool) or (isinstance(raw_number, float) and not raw_number.is_integer()):
            raise StoryStoreError("chapterNumber must be a positive integer")
        try:
            chapter_number = int(raw_number)
        except (TypeError, ValueError, OverflowError) as exc:
            raise StoryStoreError("chapterNumber must be a positive integer") from exc
        if chapter_number < 1:
            raise StoryStoreError("chapterNumber must be a positive integer")
    if any(chapter.chapter_number == chapter_number for chapter in story.chapters):
        raise StoryStoreError(f"Chapter {chapter_number} already exists for this story.")

    chapter = Chapter(
        story=story,
        title=_clean(fields.get("title")) or f"Chapter {chapter_number}",
        content=content,
        chapter_number=chapter_number,
    )
    db.session.add(chapter)
    db.session.commit()
    return chapter


def delete_story(story_id: int) -> bool:
    story = get_story(story_id)
    if story is None:
        return False
    db.session.delete(story)
    db.session.commit()
    return True


def _clean(value: Optional[Any]) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _language_code(value: Optional[Any]) -> str:
    code = _clean(value).lower()
    return code if code in LANGUAGE_CONFIGS else "en"
