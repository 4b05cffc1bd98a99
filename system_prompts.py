"""Central configuration for system prompts used by the completion client."""

from __future__ import annotations

from typing import Any, Dict, Optional

SYSTEM_PROMPTS: Dict[str, Dict[str, Any]] = {
    "chapter_generation": {
        "base": (
            "You are a creative storyteller. Generate engaging, age-appropriate stories "
            "based on the user's preferences."
        ),
        "language_rule": "IMPORTANT: {language_instruction}",
        "story_details": (
            "Story Details:\n"
            "- Genre: {genre}\n"
            "- Main Characters: {characters}\n"
            "- Setting: {setting}\n"
            "- Chapter Number: {chapter_number}\n"
            "- Language: {language_name}"
        ),
        "previous_chapters": "Previous chapters summary: {previous_chapters}",
        "instructions": (
            "Write a compelling chapter that:\n"
            "1. Is approximately 300-500 words\n"
            "2. Advances the plot meaningfully\n"
            "3. Maintains consistency with previous chapters\n"
            "4. Includes dialogue and descriptive scenes\n"
            "5. Ends with a hook for the next chapter (unless it's the final chapter)\n"
            "6. Uses markdown formatting for better readability (headings, emphasis, etc.)\n"
            "7. Is written entirely in {language_name}\n\n"
            "Format the response as a complete chapter with proper paragraphs and markdown "
            "formatting. Ensure all text, including dialogue, narration, and descriptions, "
            "is in {language_name}."
        ),
    },
    "title_generation": {
        "max_new_tokens": 50,
        "temperature": 0.9,
        "prompt": (
            "Generate a creative and engaging book title for a {genre} story featuring "
            "{characters} set in {setting}.{theme_sentence} Return only the title, nothing else."
        ),
        "theme_sentence": " The theme involves {theme}.",
    },
}


def build_chapter_system_prompt(
    *,
    genre: str,
    characters: str,
    setting: str,
    chapter_number: int,
    language_name: str,
    language_instruction: str,
    previous_chapters: Optional[str] = None,
) -> str:
    config = SYSTEM_PROMPTS["chapter_generation"]
    sections = [
        config["base"],
        config["language_rule"].format(language_instruction=language_instruction),
        config["story_details"].format(
            genre=genre,
            characters=characters,
            setting=setting,
            chapter_number=chapter_number,
            language_name=language_name,
        ),
    ]
    if previous_chapters:
        sections.append(config["previous_chapters"].format(previous_chapters=previous_chapters))
    sections.append(config["instructions"].format(language_name=language_name))
    return "\n\n".join(sections)


def build_title_prompt(*, genre: str, characters: str, setting: str, theme: Optional[str] = None) -> str:
    config = SYSTEM_PROMPTS["title_generation"]
    theme_sentence = config["theme_sentence"].format(theme=theme) if theme else ""
    return config["prompt"].format(
        genre=genre,
        characters=characters,
        setting=setting,
        theme_sentence=theme_sentence,
    )


def get_prompt_parameters(key: str) -> Dict[str, Any]:
    """Return the sampling parameters configured for ``key``."""

    config = SYSTEM_PROMPTS.get(key) or {}
    return {
        name: config[name]
        for name in ("max_new_tokens", "temperature")
        if config.get(name) is not None
    }
