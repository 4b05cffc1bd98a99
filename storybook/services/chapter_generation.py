from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from flask import current_app

from api_handler import GenerationFailed, OpenAICompatibleGenerator
from system_prompts import build_chapter_system_prompt, build_title_prompt, get_prompt_parameters

from ..chapter_request import GenerationRequest
from .availability import ai_available, get_completion_api_key
from .languages import resolve_language
from .streaming import ChapterEventStream
from .templates import generate_fallback_title, generate_template_chapter

NO_CREDENTIAL_MESSAGE = "Template chapter created. Add an AI provider API key for AI generation."
FAILED_MESSAGE = "AI generation failed. Template chapter provided."


@dataclass
class ChapterGenerationResult:
    content: str
    is_ai_generated: bool
    message: Optional[str] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"content": self.content, "isAIGenerated": self.is_ai_generated}
        if self.message:
            payload["message"] = self.message
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class TitleGenerationResult:
    title: str
    is_ai_generated: bool
    message: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": self.title, "isAIGenerated": self.is_ai_generated}
        if self.message:
            payload["message"] = self.message
        return payload


def start_chapter_generation(
    generation_request: GenerationRequest,
) -> Union[ChapterGenerationResult, ChapterEventStream]:
    """Pick the delivery path for one chapter request.

    Returns a :class:`ChapterGenerationResult` to be sent as a single JSON
    document (no credential, client construction failed, or streaming is
    disabled) or a :class:`ChapterEventStream` to be sent as an event stream.
    """

    app = current_app
    if not ai_available():
        app.logger.info("Completion API key not configured; returning template chapter.")
        return template_result(generation_request, message=NO_CREDENTIAL_MESSAGE)

    try:
        generator = _get_completion_client()
    except GenerationFailed as exc:
        app.logger.warning("Completion client unavailable; returning template chapter. Error: %s", exc)
        return template_result(generation_request, message=FAILED_MESSAGE, error=exc.reason)

    if not app.config.get("STREAM_CHAPTERS", True):
        return generate_chapter_content(generation_request, generator)

    language = resolve_language(generation_request.language_code)
    system_prompt = build_system_prompt(generation_request)
    app.logger.info(
        "Streaming chapter %s in %s.",
        generation_request.chapter_number,
        language.name,
    )
    return ChapterEventStream(
        generation_request,
        open_deltas=lambda: generator.stream_response(
            generation_request.prompt,
            system_prompt=system_prompt,
        ),
        fallback=lambda: _template_chapter(generation_request),
        language_name=language.name,
        pacing_seconds=app.config.get("STREAM_PACING_SECONDS", 0.0),
        timeout_seconds=app.config.get("GENERATION_TIMEOUT_SECONDS"),
        logger=app.logger,
    )


def generate_chapter_content(
    generation_request: GenerationRequest,
    generator: Optional[Any] = None,
) -> ChapterGenerationResult:
    """Produce a whole chapter in one call, falling back to the template on failure."""

    if generator is None:
        if not ai_available():
            return template_result(generation_request, message=NO_CREDENTIAL_MESSAGE)
        try:
            generator = _get_completion_client()
        except GenerationFailed as exc:
            return template_result(generation_request, message=FAILED_MESSAGE, error=exc.reason)

    try:
        content = generator.generate_response(
            generation_request.prompt,
            system_prompt=build_system_prompt(generation_request),
        )
    except GenerationFailed as exc:
        current_app.logger.warning("Chapter generation failed; using template chapter. Error: %s", exc)
        return template_result(generation_request, message=FAILED_MESSAGE, error=exc.reason)

    content = (content or "").strip()
    if not content:
        return template_result(generation_request, message=FAILED_MESSAGE, error="The AI returned no text.")
    return ChapterGenerationResult(content=content, is_ai_generated=True)


def generate_title(
    genre: str,
    characters: str,
    setting: str,
    *,
    theme: Optional[str] = None,
) -> TitleGenerationResult:
    if not ai_available():
        current_app.logger.info("Completion API key not configured; using fallback title.")
        return TitleGenerationResult(title=generate_fallback_title(genre, characters, setting), is_ai_generated=False)

    try:
        generator = _get_completion_client()
        title = generator.generate_response(
            build_title_prompt(genre=genre, characters=characters, setting=setting, theme=theme),
            **get_prompt_parameters("title_generation"),
        )
    except GenerationFailed as exc:
        current_app.logger.warning("Title generation failed; using fallback title. Error: %s", exc)
        return TitleGenerationResult(
            title=generate_fallback_title(genre, characters, setting),
            is_ai_generated=False,
            message="AI generation failed, using creative fallback",
        )

    cleaned = title.strip().strip('"').strip()
    if not cleaned:
        return TitleGenerationResult(title=generate_fallback_title(genre, characters, setting), is_ai_generated=False)
    return TitleGenerationResult(title=cleaned, is_ai_generated=True)


def build_system_prompt(generation_request: GenerationRequest) -> str:
    language = resolve_language(generation_request.language_code)
    return build_chapter_system_prompt(
        genre=generation_request.genre,
        characters=generation_request.characters,
        setting=generation_request.setting,
        chapter_number=generation_request.chapter_number,
        language_name=language.name,
        language_instruction=language.instruction,
        previous_chapters=generation_request.previous_chapters_summary or None,
    )


def template_result(
    generation_request: GenerationRequest,
    *,
    message: Optional[str] = None,
    error: Optional[str] = None,
) -> ChapterGenerationResult:
    return ChapterGenerationResult(
        content=_template_chapter(generation_request),
        is_ai_generated=False,
        message=message,
        error=error,
    )


def _template_chapter(generation_request: GenerationRequest) -> str:
    return generate_template_chapter(
        generation_request.chapter_number,
        generation_request.characters,
        generation_request.setting,
        generation_request.genre,
        generation_request.prompt,
        generation_request.language_code,
    )


def _get_completion_client() -> OpenAICompatibleGenerator:  # pragma: no cover - integration point
    """Build a client for the current request.

    Not cached: the credential is read per request and may change between calls.
    """

    app = current_app
    api_key = get_completion_api_key()
    if not api_key:
        raise GenerationFailed("No completion API key is configured.")
    generator = OpenAICompatibleGenerator(
        model_name=app.config.get("COMPLETION_MODEL", "deepseek-chat"),
        api_key=api_key,
        base_url=app.config.get("COMPLETION_BASE_URL"),
        default_max_tokens=app.config.get("COMPLETION_MAX_TOKENS", 800),
        default_temperature=app.config.get("COMPLETION_TEMPERATURE", 0.7),
        timeout=app.config.get("COMPLETION_REQUEST_TIMEOUT"),
    )
    model_name, redacted_key = generator.signature()
    app.logger.debug("Using completion model %s with key %s.", model_name, redacted_key)
    return generator
