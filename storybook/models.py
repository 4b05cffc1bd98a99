from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from .extensions import db


class Story(db.Model):
    __tablename__ = "stories"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    genre = db.Column(db.String(100), nullable=False)
    characters = db.Column(db.Text, nullable=False)
    setting = db.Column(db.Text, nullable=False)
    theme = db.Column(db.Text, nullable=True)
    cover_color = db.Column(db.String(64), nullable=True)
    language = db.Column(db.String(8), nullable=False, default="en")
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    chapters = db.relationship(
        "Chapter",
        backref="story",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Chapter.chapter_number",
    )

    def __repr__(self) -> str:  # pragma: no cover - repr for debugging
        return f"<Story {self.title}>"

    @property
    def next_chapter_number(self) -> int:
        if not self.chapters:
            return 1
        return max(chapter.chapter_number for chapter in self.chapters) + 1

    def to_dict(self, *, include_chapters: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "genre": self.genre,
            "characters": self.characters,
            "setting": self.setting,
            "theme": self.theme or "",
            "coverColor": self.cover_color,
            "language": self.language or "en",
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if include_chapters:
            payload["chapters"] = [chapter.to_dict() for chapter in self.chapters]
        return payload


class Chapter(db.Model):
    __tablename__ = "chapters"

    id = db.Column(db.Integer, primary_key=True)
    story_id = db.Column(db.Integer, db.ForeignKey("stories.id"), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    chapter_number = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("story_id", "chapter_number", name="uq_chapter_story_number"),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Chapter {self.chapter_number} of story {self.story_id}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "chapterNumber": self.chapter_number,
        }
