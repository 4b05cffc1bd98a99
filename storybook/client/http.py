from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..chapter_request import GenerationRequest, summarize_previous_chapters
from ..services.templates import default_chapter_prompt, generate_template_chapter, manual_chapter_template
from .session import CancellationToken, ChapterDraft, ChapterGenerationSession, DraftStatus
from .sources import EventStreamSource, SimulatedStreamSource, TextSource

LOGGER = logging.getLogger(__name__)


class StoryClientError(RuntimeError):
    """Raised when the story server rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StoryClient:
    """HTTP client for the story server.

    ``session`` may be any object with the ``requests.Session`` request
    methods; tests pass a Flask test-client adapter.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        reveal_step_delay: float = 0.03,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = session or requests.Session()
        self.timeout = timeout
        self.reveal_step_delay = reveal_step_delay

    # ---------------- generation ----------------
    def check_ai_status(self) -> Dict[str, Any]:
        try:
            return self._json("GET", "/check-ai-status")
        except (requests.RequestException, StoryClientError) as exc:
            LOGGER.warning("AI status check failed: %s", exc)
            return {"aiAvailable": False, "message": "AI status is unavailable."}

    def generate_title(self, genre: str, characters: str, setting: str, theme: str = "") -> Dict[str, Any]:
        return self._json(
            "POST",
            "/generate-title",
            json={"genre": genre, "characters": characters, "setting": setting, "theme": theme},
        )

    def open_chapter_source(self, generation_request: GenerationRequest, token: CancellationToken) -> TextSource:
        """POST the request and wrap the response in the matching text source."""

        response = self.http.post(
            self._url("/generate-chapter"),
            json=generation_request.to_payload(),
            stream=True,
            timeout=self.timeout,
        )
        token.register(response.close)

        if response.status_code >= 400:
            message = _error_message(response, "Failed to generate chapter")
            response.close()
            raise StoryClientError(message, response.status_code)

        content_type = response.headers.get("Content-Type", "")
        if "text/event-stream" in content_type:
            return EventStreamSource(response.iter_content(chunk_size=None), on_close=response.close)

        payload = response.json()
        response.close()
        return SimulatedStreamSource(
            str(payload.get("content") or ""),
            step_delay=self.reveal_step_delay,
            chapter_number=generation_request.chapter_number,
            genre=generation_request.genre,
            characters=generation_request.characters,
            language=generation_request.language_code,
            is_ai_generated=bool(payload.get("isAIGenerated")),
            message=payload.get("message"),
        )

    def generate_chapter(
        self,
        generation_request: GenerationRequest,
        session: ChapterGenerationSession,
    ) -> ChapterDraft:
        """Run one chapter generation into ``session`` and return its draft.

        Invalid requests raise :class:`GenerationRequestError`; every other
        failure ends with template text in a ``failed`` draft.
        """

        def fallback() -> str:
            return generate_template_chapter(
                generation_request.chapter_number,
                generation_request.characters,
                generation_request.setting,
                generation_request.genre,
                generation_request.prompt,
                generation_request.language_code,
            )

        # Reject what the server would answer with a 400 before any request is made.
        GenerationRequest.from_payload(generation_request.to_payload())

        return session.run(
            lambda token: self.open_chapter_source(generation_request, token),
            fallback=fallback,
        )

    def build_next_chapter_request(self, story: Mapping[str, Any], prompt: Optional[str] = None) -> GenerationRequest:
        chapters = list(story.get("chapters") or [])
        chapter_number = len(chapters) + 1
        chapter_prompt = (prompt or "").strip() or default_chapter_prompt(
            chapter_number, story.get("characters"), story.get("setting")
        )
        return GenerationRequest(
            prompt=chapter_prompt,
            genre=str(story.get("genre") or ""),
            characters=str(story.get("characters") or ""),
            setting=str(story.get("setting") or ""),
            chapter_number=chapter_number,
            previous_chapters_summary=summarize_previous_chapters(chapters),
            language_code=str(story.get("language") or "en"),
        )

    def continue_story(
        self,
        story_id: int,
        session: ChapterGenerationSession,
        *,
        prompt: Optional[str] = None,
    ) -> ChapterDraft:
        story = self.get_story(story_id)
        return self.generate_chapter(self.build_next_chapter_request(story, prompt), session)

    def start_manual_chapter(self, story: Mapping[str, Any], session: ChapterGenerationSession) -> ChapterDraft:
        chapter_number = len(story.get("chapters") or []) + 1
        content = manual_chapter_template(
            chapter_number, story.get("genre"), story.get("characters"), story.get("setting")
        )
        return session.run(
            lambda token: SimulatedStreamSource(
                content,
                step_delay=self.reveal_step_delay,
                chapter_number=chapter_number,
                is_ai_generated=False,
            )
        )

    def save_draft(
        self,
        story_id: int,
        session: ChapterGenerationSession,
        *,
        chapter_number: Optional[int] = None,
        title: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Hand the finished draft to the story store, then clear the draft."""

        draft = session.draft
        if draft.status not in (DraftStatus.COMPLETE, DraftStatus.FAILED) or not draft.accumulated_text.strip():
            raise StoryClientError("Only a finished, non-empty chapter draft can be saved.")

        fields: Dict[str, Any] = {"content": draft.accumulated_text}
        if chapter_number is not None:
            fields["chapterNumber"] = chapter_number
            fields["title"] = title or f"Chapter {chapter_number}"
        elif title:
            fields["title"] = title
        chapter = self.create_chapter(story_id, fields)
        session.reset()
        return chapter

    # ---------------- story store ----------------
    def list_stories(self) -> List[Dict[str, Any]]:
        return self._json("GET", "/stories")

    def get_story(self, story_id: int) -> Dict[str, Any]:
        return self._json("GET", f"/stories/{story_id}")

    def create_story(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        return self._json("POST", "/stories", json=dict(fields))

    def update_story(self, story_id: int, patch: Mapping[str, Any]) -> Dict[str, Any]:
        return self._json("PUT", f"/stories/{story_id}", json=dict(patch))

    def create_chapter(self, story_id: int, fields: Mapping[str, Any]) -> Dict[str, Any]:
        return self._json("POST", f"/stories/{story_id}/chapters", json=dict(fields))

    def delete_story(self, story_id: int) -> bool:
        try:
            self._json("DELETE", f"/stories/{story_id}")
        except StoryClientError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    # ---------------- helpers ----------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self.http.request(method, self._url(path), timeout=self.timeout, **kwargs)
        if response.status_code >= 400:
            raise StoryClientError(_error_message(response, response.reason or "Request failed"), response.status_code)
        return response.json()


def _error_message(response: Any, default: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        return default
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return default
