from __future__ import annotations

from flask import Response, current_app, jsonify, request, stream_with_context

from ..chapter_request import GenerationRequest, GenerationRequestError
from ..services import chapter_generation
from ..services.availability import ai_status
from ..services.streaming import ChapterEventStream
from . import bp


STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@bp.route("/generate-chapter", methods=["POST"])
def generate_chapter():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Missing required fields"}), 400

    try:
        generation_request = GenerationRequest.from_payload(payload)
    except GenerationRequestError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        outcome = chapter_generation.start_chapter_generation(generation_request)
    except Exception:  # pragma: no cover
        current_app.logger.exception("Unexpected error while generating chapter")
        return jsonify({"error": "Failed to generate story content"}), 500

    if isinstance(outcome, ChapterEventStream):
        return Response(
            stream_with_context(outcome.frames()),
            mimetype="text/event-stream",
            headers=STREAM_HEADERS,
        )
    return jsonify(outcome.to_payload())


@bp.route("/check-ai-status", methods=["GET"])
def check_ai_status():
    return jsonify(ai_status())


@bp.route("/generate-title", methods=["POST"])
def generate_title():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        payload = {}

    genre = str(payload.get("genre") or "").strip()
    characters = str(payload.get("characters") or "").strip()
    setting = str(payload.get("setting") or "").strip()
    if not (genre and characters and setting):
        return jsonify({"error": "Missing required fields"}), 400

    theme = str(payload.get("theme") or "").strip() or None
    result = chapter_generation.generate_title(genre, characters, setting, theme=theme)
    return jsonify(result.to_payload())
