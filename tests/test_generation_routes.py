import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from api_handler import GenerationFailed
from storybook import create_app
from storybook.chapter_request import GenerationRequest
from storybook.client import ChapterGenerationSession, DraftStatus, EventStreamSource
from storybook.config import TestConfig
from storybook.extensions import db
from storybook.protocol import Complete, Connected, Failure, FrameDecoder, Start, TextDelta
from storybook.services import chapter_generation
from storybook.services.streaming import ChapterEventStream, GenerationTimeout

CHAPTER_REQUEST = {
    "prompt": "The heroes find a map",
    "genre": "Fantasy",
    "characters": "Mira and Tok",
    "setting": "the Glass Desert",
    "chapterNumber": 1,
    "language": "en",
}


@pytest.fixture
def app_instance(monkeypatch):
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app_instance):
    return app_instance.test_client()


class DummyGenerator:
    def __init__(self, deltas=(), *, fail_after=None, full_text="", title=""):
        self.deltas = list(deltas)
        self.fail_after = fail_after
        self.full_text = full_text
        self.title = title
        self.system_prompts = []
        self.closed = False

    def stream_response(self, prompt, *, system_prompt=None, **_):
        self.system_prompts.append(system_prompt)
        try:
            for index, delta in enumerate(self.deltas):
                if self.fail_after is not None and index == self.fail_after:
                    raise GenerationFailed("Completion stream interrupted: connection reset")
                yield delta
        finally:
            self.closed = True

    def generate_response(self, prompt, *, system_prompt=None, **_):
        self.system_prompts.append(system_prompt)
        if self.title:
            return self.title
        if not self.full_text:
            raise GenerationFailed("Chat completion returned no text.")
        return self.full_text


def _use_generator(monkeypatch, generator):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test-key")
    monkeypatch.setattr(chapter_generation, "_get_completion_client", lambda: generator)
    return generator


def _decode(response):
    decoder = FrameDecoder()
    return decoder.feed(response.get_data()) + decoder.flush()


def test_without_credential_returns_template_json(client):
    response = client.post("/generate-chapter", json=CHAPTER_REQUEST)

    assert response.status_code == 200
    assert response.mimetype == "application/json"
    payload = response.get_json()
    assert payload["isAIGenerated"] is False
    assert "Mira and Tok" in payload["content"]
    assert "the Glass Desert" in payload["content"]
    assert payload["message"] == chapter_generation.NO_CREDENTIAL_MESSAGE


def test_streams_cumulative_text_frames(client, monkeypatch):
    _use_generator(monkeypatch, DummyGenerator(["Once ", "upon ", "a ", "time."]))

    response = client.post("/generate-chapter", json=CHAPTER_REQUEST)

    assert response.status_code == 200
    assert response.mimetype == "text/event-stream"
    assert response.headers["Cache-Control"] == "no-cache"
    events = _decode(response)

    assert events[0] == Connected()
    assert isinstance(events[1], Start)
    assert events[1].chapter_number == 1
    assert events[1].language == "English"
    assert [event.full_content for event in events[2:6]] == [
        "Once ",
        "Once upon ",
        "Once upon a ",
        "Once upon a time.",
    ]
    assert all(isinstance(event, TextDelta) for event in events[2:6])
    assert isinstance(events[-1], Complete)
    assert events[-1].full_content == "Once upon a time."
    assert events[-1].word_count == 4
    assert len(events) == 7


def test_stream_uses_requested_language(client, monkeypatch):
    generator = _use_generator(monkeypatch, DummyGenerator(["Hola."]))

    events = _decode(client.post("/generate-chapter", json=dict(CHAPTER_REQUEST, language="es")))

    assert events[1].language == "Spanish"
    assert "Spanish" in generator.system_prompts[0]
    assert "Escribe en español" in generator.system_prompts[0]


def test_previous_chapters_reach_system_prompt(client, monkeypatch):
    generator = _use_generator(monkeypatch, DummyGenerator(["Next."]))
    payload = dict(CHAPTER_REQUEST, chapterNumber=2, previousChapters="Chapter 1: They met...")

    _decode(client.post("/generate-chapter", json=payload))

    assert "Previous chapters summary: Chapter 1: They met..." in generator.system_prompts[0]
    assert "- Chapter Number: 2" in generator.system_prompts[0]


def test_provider_failure_before_first_delta_sends_error_with_fallback(client, monkeypatch):
    generator = _use_generator(monkeypatch, DummyGenerator(["Once "], fail_after=0))

    response = client.post("/generate-chapter", json=CHAPTER_REQUEST)
    events = _decode(response)

    assert [type(event) for event in events] == [Connected, Start, Failure]
    assert events[-1].fallback_content
    assert events[-1].partial_content == ""
    assert generator.closed

    session = ChapterGenerationSession()
    draft = session.run(lambda token: EventStreamSource([response.get_data()]))
    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == events[-1].fallback_content
    assert draft.accumulated_text.strip()


def test_provider_failure_mid_stream_sends_error_with_fallback(client, monkeypatch):
    generator = _use_generator(monkeypatch, DummyGenerator(["Once ", "upon "], fail_after=1))

    response = client.post("/generate-chapter", json=CHAPTER_REQUEST)
    events = _decode(response)

    failure = events[-1]
    assert isinstance(failure, Failure)
    assert failure.partial_content == "Once "
    assert failure.fallback_content.startswith("# Chapter 1: The Beginning")
    assert "Mira and Tok" in failure.fallback_content
    assert not any(isinstance(event, Complete) for event in events)
    assert generator.closed

    session = ChapterGenerationSession()
    draft = session.run(lambda token: EventStreamSource([response.get_data()]))
    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == failure.fallback_content
    assert draft.is_ai_generated is False


def test_empty_provider_stream_sends_error(client, monkeypatch):
    _use_generator(monkeypatch, DummyGenerator(["", "  "]))

    events = _decode(client.post("/generate-chapter", json=CHAPTER_REQUEST))

    assert isinstance(events[-1], Failure)
    assert "empty chapter" in events[-1].message
    assert events[-1].fallback_content


def test_client_construction_failure_returns_template_json(client, monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test-key")

    def broken_client():
        raise GenerationFailed("Unable to initialise the completion client: bad url")

    monkeypatch.setattr(chapter_generation, "_get_completion_client", broken_client)

    payload = client.post("/generate-chapter", json=CHAPTER_REQUEST).get_json()

    assert payload["isAIGenerated"] is False
    assert payload["message"] == chapter_generation.FAILED_MESSAGE
    assert payload["error"] == "Unable to initialise the completion client: bad url"


def test_streaming_disabled_returns_single_document(app_instance, client, monkeypatch):
    app_instance.config["STREAM_CHAPTERS"] = False
    _use_generator(monkeypatch, DummyGenerator(full_text="  A whole chapter.  "))

    response = client.post("/generate-chapter", json=CHAPTER_REQUEST)

    assert response.mimetype == "application/json"
    assert response.get_json() == {"content": "A whole chapter.", "isAIGenerated": True}


def test_streaming_disabled_falls_back_on_failure(app_instance, client, monkeypatch):
    app_instance.config["STREAM_CHAPTERS"] = False
    _use_generator(monkeypatch, DummyGenerator())

    payload = client.post("/generate-chapter", json=CHAPTER_REQUEST).get_json()

    assert payload["isAIGenerated"] is False
    assert payload["error"] == "Chat completion returned no text."


@pytest.mark.parametrize("missing", ["prompt", "genre", "characters", "setting"])
def test_missing_fields_are_rejected(client, missing):
    payload = dict(CHAPTER_REQUEST)
    payload[missing] = "   "

    response = client.post("/generate-chapter", json=payload)

    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields"}


def test_invalid_bodies_are_rejected(client):
    assert client.post("/generate-chapter", json=[1, 2]).status_code == 400
    assert client.post("/generate-chapter", data="not json").status_code == 400

    response = client.post("/generate-chapter", json=dict(CHAPTER_REQUEST, chapterNumber=0))
    assert response.status_code == 400
    assert response.get_json() == {"error": "chapterNumber must be a positive integer"}

    response = client.post("/generate-chapter", json=dict(CHAPTER_REQUEST, chapterNumber=1.7))
    assert response.status_code == 400
    assert response.get_json() == {"error": "chapterNumber must be a positive integer"}

    whole = client.post("/generate-chapter", json=dict(CHAPTER_REQUEST, chapterNumber=2.0))
    assert whole.status_code == 200


def test_ai_status_follows_environment(client, monkeypatch):
    payload = client.get("/check-ai-status").get_json()
    assert payload["aiAvailable"] is False
    assert "DEEPSEEK_API_KEY" in payload["message"]

    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-live")
    payload = client.get("/check-ai-status").get_json()
    assert payload["aiAvailable"] is True
    assert payload["model"] == "deepseek-chat"


def test_ai_status_is_cached(app_instance, client, monkeypatch):
    app_instance.config["AI_STATUS_CACHE_SECONDS"] = 60

    assert client.get("/check-ai-status").get_json()["aiAvailable"] is False
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-live")
    assert client.get("/check-ai-status").get_json()["aiAvailable"] is False
    assert "storybook.ai_status" in app_instance.extensions
    assert not any(key.startswith("_AI_STATUS") for key in app_instance.config)


def test_generate_title_without_credential(client):
    payload = client.post(
        "/generate-title",
        json={"genre": "Fantasy", "characters": "Mira", "setting": "Glass Desert"},
    ).get_json()

    assert payload["isAIGenerated"] is False
    assert payload["title"]


def test_generate_title_strips_quotes(client, monkeypatch):
    _use_generator(monkeypatch, DummyGenerator(title='"The Glass Crown"\n'))

    payload = client.post(
        "/generate-title",
        json={"genre": "Fantasy", "characters": "Mira", "setting": "Glass Desert", "theme": "trust"},
    ).get_json()

    assert payload == {"title": "The Glass Crown", "isAIGenerated": True}


def test_generate_title_falls_back_on_failure(client, monkeypatch):
    _use_generator(monkeypatch, DummyGenerator())

    payload = client.post(
        "/generate-title",
        json={"genre": "Fantasy", "characters": "Mira", "setting": "Glass Desert"},
    ).get_json()

    assert payload["isAIGenerated"] is False
    assert payload["message"] == "AI generation failed, using creative fallback"


def test_generate_title_requires_fields(client):
    response = client.post("/generate-title", json={"genre": "Fantasy"})

    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields"}


def _chapter_stream(deltas, **kwargs):
    request = GenerationRequest.from_payload(CHAPTER_REQUEST)
    return ChapterEventStream(
        request,
        open_deltas=lambda: iter(deltas),
        fallback=lambda: "Template text",
        language_name="English",
        **kwargs,
    )


def test_timeout_between_deltas_sends_error():
    ticks = iter([0.0, 1.0, 5.0, 50.0])
    stream = _chapter_stream(["a ", "b ", "c ", "d"], timeout_seconds=10, clock=lambda: next(ticks))

    decoder = FrameDecoder()
    events = decoder.feed("".join(stream.frames()))

    assert [event.full_content for event in events if isinstance(event, TextDelta)] == ["a ", "a b ", "a b c "]
    assert events[-1].message == GenerationTimeout.user_message
    assert events[-1].fallback_content == "Template text"
    assert events[-1].partial_content == "a b c "


def test_pacing_sleeps_between_deltas():
    pauses = []
    stream = _chapter_stream(["a ", "b"], pacing_seconds=0.25, sleep=pauses.append)

    list(stream.frames())

    assert pauses == [0.25, 0.25]


def test_disconnect_closes_upstream_deltas():
    closed = []

    def deltas():
        try:
            yield "Once "
            yield "upon "
            yield "a time."
        finally:
            closed.append(True)

    request = GenerationRequest.from_payload(CHAPTER_REQUEST)
    stream = ChapterEventStream(request, deltas, lambda: "Template", language_name="English")
    frames = stream.frames()
    for _ in range(3):
        next(frames)

    frames.close()

    assert stream.disconnected is True
    assert closed == [True]
