import sys
import threading
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from storybook.client import (
    CancellationToken,
    ChapterGenerationSession,
    DraftStatus,
    EventStreamSource,
    SimulatedStreamSource,
    TextSource,
)
from storybook.protocol import Complete, Connected, Failure, Start, TextDelta, count_words, encode_event

FALLBACK_TEXT = "# Chapter 1: The Beginning\n\nA template chapter."


class ScriptedSource(TextSource):
    def __init__(self, events, before_event=None):
        self._events = list(events)
        self._before_event = before_event
        self.closed = 0

    def events(self, token):
        for index, event in enumerate(self._events):
            if self._before_event is not None:
                self._before_event(index)
            yield event

    def close(self):
        self.closed += 1


def _story_events(*pieces, terminal=True):
    events = [
        Connected(),
        Start(chapter_number=1, genre="Fantasy", characters="Mira", language="English", timestamp="t"),
    ]
    text = ""
    for piece in pieces:
        text += piece
        events.append(TextDelta(delta=piece, full_content=text, word_count=count_words(text)))
    if terminal:
        events.append(Complete(full_content=text, word_count=count_words(text)))
    return events


def test_successful_run_accumulates_full_content():
    session = ChapterGenerationSession()
    source = ScriptedSource(_story_events("Once ", "upon ", "a ", "time."))

    draft = session.run(lambda token: source)

    assert draft.status is DraftStatus.COMPLETE
    assert draft.accumulated_text == "Once upon a time."
    assert draft.word_count == 4
    assert draft.is_ai_generated is True
    assert source.closed == 1
    assert not session.in_flight


def test_observers_receive_independent_snapshots():
    session = ChapterGenerationSession()
    seen = []
    unsubscribe = session.subscribe(seen.append)

    session.run(lambda token: SimulatedStreamSource("One two three", step_delay=0))

    assert [draft.status for draft in seen] == [
        DraftStatus.CONNECTING,
        DraftStatus.STREAMING,
        DraftStatus.STREAMING,
        DraftStatus.STREAMING,
        DraftStatus.STREAMING,
        DraftStatus.COMPLETE,
    ]
    assert [draft.accumulated_text for draft in seen[2:5]] == ["One ", "One two ", "One two three"]
    assert seen[0].accumulated_text == ""

    unsubscribe()
    session.reset()
    assert len(seen) == 6


@pytest.mark.parametrize("cancel_at", range(0, 7))
def test_cancel_at_any_point_returns_to_idle(cancel_at):
    session = ChapterGenerationSession()
    results = []

    def before_event(index):
        if index == cancel_at:
            results.append(session.cancel())
            results.append(session.cancel())

    source = ScriptedSource(_story_events("Once ", "upon ", "a ", "time."), before_event=before_event)
    draft = session.run(lambda token: source, fallback=lambda: FALLBACK_TEXT)

    assert results == [True, False]
    assert draft.status is DraftStatus.IDLE
    assert draft.cancelled is True
    assert draft.accumulated_text == ""
    assert source.closed == 1
    assert not session.in_flight


def test_cancel_before_source_opens():
    session = ChapterGenerationSession()
    source = ScriptedSource(_story_events("Hello."))

    def open_source(token):
        assert session.cancel() is True
        assert token.cancelled
        return source

    draft = session.run(open_source, fallback=lambda: FALLBACK_TEXT)

    assert draft.status is DraftStatus.IDLE
    assert draft.accumulated_text == ""
    assert source.closed == 1


def test_cancel_after_completion_is_a_no_op():
    session = ChapterGenerationSession()
    session.run(lambda token: ScriptedSource(_story_events("Done.")))

    assert session.cancel() is False
    assert session.draft.status is DraftStatus.COMPLETE
    assert session.draft.accumulated_text == "Done."


def test_cancel_interrupts_simulated_reveal_from_another_thread():
    session = ChapterGenerationSession()
    streaming = threading.Event()

    def on_change(draft):
        if draft.status is DraftStatus.STREAMING and draft.accumulated_text:
            streaming.set()

    session.subscribe(on_change)
    results = []
    worker = threading.Thread(
        target=lambda: results.append(
            session.run(lambda token: SimulatedStreamSource("slow words here", step_delay=30))
        )
    )
    worker.start()
    assert streaming.wait(5)

    assert session.cancel() is True
    worker.join(5)

    assert not worker.is_alive()
    assert results[0].status is DraftStatus.IDLE
    assert results[0].accumulated_text == ""


def test_transport_error_plays_fallback_and_fails():
    session = ChapterGenerationSession()
    seen = []
    session.subscribe(seen.append)

    def open_source(token):
        raise ConnectionError("refused")

    draft = session.run(open_source, fallback=lambda: FALLBACK_TEXT)

    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == FALLBACK_TEXT
    assert draft.is_ai_generated is False
    assert draft.message == "The story generator could not be reached."
    assert any(snapshot.status is DraftStatus.STREAMING for snapshot in seen)


def test_transport_error_without_fallback_still_fails():
    session = ChapterGenerationSession()

    def open_source(token):
        raise ConnectionError("refused")

    draft = session.run(open_source)

    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == ""


def test_empty_completion_is_replaced_by_fallback():
    session = ChapterGenerationSession()

    draft = session.run(lambda token: ScriptedSource(_story_events()), fallback=lambda: FALLBACK_TEXT)

    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == FALLBACK_TEXT
    assert draft.message == "The story generator returned an empty chapter."


def test_stream_without_terminal_event_is_replaced_by_fallback():
    session = ChapterGenerationSession()
    events = _story_events("Once ", "upon", terminal=False)

    draft = session.run(lambda token: ScriptedSource(events), fallback=lambda: FALLBACK_TEXT)

    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == FALLBACK_TEXT
    assert draft.message == "The connection closed before the chapter was finished."


def test_error_event_with_server_fallback():
    session = ChapterGenerationSession()
    events = _story_events("Once ", terminal=False) + [
        Failure(message="AI generation failed.", fallback_content="Server template", partial_content="Once ")
    ]

    draft = session.run(lambda token: ScriptedSource(events), fallback=lambda: FALLBACK_TEXT)

    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == "Server template"
    assert draft.message == "AI generation failed."
    assert draft.status_message == "AI generation failed."


def test_error_event_without_fallback_keeps_partial_text():
    session = ChapterGenerationSession()
    events = _story_events("Once ", "upon", terminal=False) + [Failure(message="Interrupted")]

    draft = session.run(lambda token: ScriptedSource(events), fallback=lambda: FALLBACK_TEXT)

    assert draft.status is DraftStatus.FAILED
    assert draft.accumulated_text == "Once upon"


def test_run_rejects_overlapping_generations():
    session = ChapterGenerationSession()
    errors = []

    def open_source(token):
        with pytest.raises(RuntimeError):
            session.run(lambda inner: ScriptedSource([]))
        with pytest.raises(RuntimeError):
            session.reset()
        errors.append("checked")
        return ScriptedSource(_story_events("Fine."))

    draft = session.run(open_source)

    assert errors == ["checked"]
    assert draft.status is DraftStatus.COMPLETE


def test_reset_clears_finished_draft():
    session = ChapterGenerationSession()
    session.run(lambda token: ScriptedSource(_story_events("Done.")))

    session.reset()

    assert session.draft.status is DraftStatus.IDLE
    assert session.draft.accumulated_text == ""


def test_simulated_source_steps():
    assert SimulatedStreamSource("Hello  brave\nworld").steps() == ["Hello  ", "brave\n", "world"]
    assert SimulatedStreamSource("abc", granularity="character").steps() == ["a", "b", "c"]
    assert SimulatedStreamSource("").steps() == []
    with pytest.raises(ValueError):
        SimulatedStreamSource("abc", granularity="sentence")


def test_event_stream_source_decodes_chunks_and_closes_once():
    closed = []
    data = "".join(encode_event(event) for event in _story_events("Hi ", "there.")).encode("utf-8")
    chunks = [data[index:index + 5] for index in range(0, len(data), 5)]
    source = EventStreamSource(iter(chunks), on_close=lambda: closed.append(True))

    events = list(source.events(CancellationToken()))
    source.close()
    source.close()

    assert events[-1] == Complete(full_content="Hi there.", word_count=2)
    assert closed == [True]


def test_cancellation_token_runs_callbacks_once():
    token = CancellationToken()
    calls = []
    token.register(lambda: calls.append("early"))

    assert token.cancel() is True
    assert token.cancel() is False
    token.register(lambda: calls.append("late"))

    assert calls == ["early", "late"]
    assert token.wait(0) is True
