from __future__ import annotations

from flask import jsonify, request

from ..services import story_store
from ..services.story_store import StoryStoreError
from . import bp


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _not_found():
    return jsonify({"error": "Story not found"}), 404


@bp.route("", methods=["GET"])
def list_stories():
    return jsonify([story.to_dict() for story in story_store.list_stories()])


@bp.route("", methods=["POST"])
def create_story():
    try:
        story = story_store.create_story(_json_body())
    except StoryStoreError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(story.to_dict()), 201


@bp.route("/<int:story_id>", methods=["GET"])
def get_story(story_id: int):
    story = story_store.get_story(story_id)
    if story is None:
        return _not_found()
    return jsonify(story.to_dict())


@bp.route("/<int:story_id>", methods=["PUT"])
def update_story(story_id: int):
    try:
        story = story_store.update_story(story_id, _json_body())
    except StoryStoreError as exc:
        return jsonify({"error": str(exc)}), 400
    if story is None:
        return _not_found()
    return jsonify(story.to_dict())


@bp.route("/<int:story_id>", methods=["DELETE"])
def delete_story(story_id: int):
    if not story_store.delete_story(story_id):
        return _not_found()
    return jsonify({"success": True})


@bp.route("/<int:story_id>/chapters", methods=["POST"])
def create_chapter(story_id: int):
    try:
        chapter = story_store.create_chapter(story_id, _json_body())
    except StoryStoreError as exc:
        return jsonify({"error": str(exc)}), 400
    if chapter is None:
        return _not_found()
    return jsonify(chapter.to_dict()), 201
