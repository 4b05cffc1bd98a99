"""Deterministic chapter and title text used whenever AI generation is unavailable.

Every public function here must return usable, non-empty text for any input so
that callers can rely on it as the fallback of last resort.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, Optional

from .languages import DEFAULT_LANGUAGE

LOGGER = logging.getLogger(__name__)


_CHAPTER_TEMPLATES: Dict[str, Dict[str, str]] = {
    "en": {
        "beginning": (
            "# Chapter {chapter_number}: The Beginning\n\n"
            "**{characters}** paused at the edge of *{setting}*, breathing in the strange air of a place "
            "none of them had ever truly seen. Whatever happened next would mark the start of their "
            "{genre} adventure.\n\n"
            "## First Steps\n\n"
            "Every shadow seemed to hide a secret and every distant sound hinted at something waiting "
            "to be found. The stories they had heard about this place had never agreed on much, except "
            "that nobody came back unchanged.\n\n"
            "> \"Still sure about this?\" one of them asked, voice nearly lost beneath the hum of {setting}.\n\n"
            "Glances passed between them, each face showing the same mix of nerves and excitement. Turning "
            "back had stopped being an option a long way down the road.\n\n"
            "**\"We came here together,\"** came the answer at last. **\"We finish it together.\"**\n\n"
            "With that, they stepped forward, and their {genre} journey truly began."
        ),
        "continuation": (
            "# Chapter {chapter_number}: The Adventure Continues\n\n"
            "The road that had carried **{characters}** through *{setting}* kept bending in directions "
            "nobody had planned for. What started as a simple errand had grown into something far larger.\n\n"
            "## New Developments\n\n"
            "{direction} facing trials that tested their skills and their trust in one another.\n\n"
            "The {genre} threads of their tale kept tightening. Old mysteries surfaced piece by piece, "
            "friendships deepened under pressure, and the true size of what they had taken on grew "
            "clearer with every passing day.\n\n"
            "> \"Look how far we've come,\" one of them said, glancing back along the trail.\n\n"
            "> \"Far,\" another agreed quietly, \"but not nearly far enough.\"\n\n"
            "The wind carried rumours of distant places, and each step forward brought a new ally, "
            "a new danger, or a new question waiting for an answer."
        ),
        "direction_with_prompt": "Following their chosen path - *{prompt}* - they found themselves",
        "direction_without_prompt": "They found themselves",
        "direction_heading": "Story Direction",
        "footer": (
            "*This is a template chapter. Edit it to match your vision, or configure an AI "
            "provider key to enable automated generation.*"
        ),
    },
    "es": {
        "beginning": (
            "# Capítulo {chapter_number}: El Comienzo\n\n"
            "**{characters}** se detuvo al borde de *{setting}*, respirando el aire extraño de un lugar "
            "que ninguno había visto de verdad. Lo que ocurriera a continuación marcaría el inicio de su "
            "aventura de {genre}.\n\n"
            "## Los Primeros Pasos\n\n"
            "Cada sombra parecía esconder un secreto y cada sonido lejano insinuaba algo esperando a ser "
            "descubierto. Las historias sobre este lugar nunca coincidían en mucho, salvo en que nadie "
            "regresaba igual.\n\n"
            "> \"¿Seguro que quieres hacerlo?\", preguntó uno de ellos, con la voz casi perdida bajo el "
            "murmullo de {setting}.\n\n"
            "Intercambiaron miradas, cada rostro con la misma mezcla de nervios y emoción. Dar la vuelta "
            "había dejado de ser una opción hacía mucho.\n\n"
            "**\"Llegamos juntos\"**, fue la respuesta. **\"Y terminaremos juntos.\"**\n\n"
            "Con eso dieron un paso al frente, y su viaje de {genre} comenzó de verdad."
        ),
        "continuation": (
            "# Capítulo {chapter_number}: La Aventura Continúa\n\n"
            "El camino que había llevado a **{characters}** a través de *{setting}* seguía torciéndose "
            "en direcciones que nadie había previsto. Lo que empezó como un encargo sencillo se había "
            "convertido en algo mucho mayor.\n\n"
            "## Nuevos Desarrollos\n\n"
            "{direction} ante pruebas que pusieron a prueba sus habilidades y la confianza entre ellos.\n\n"
            "Los hilos de {genre} de su historia se tensaban cada vez más. Los viejos misterios salían a "
            "la luz poco a poco, las amistades se hacían más profundas y el verdadero alcance de su "
            "empresa se aclaraba con cada día.\n\n"
            "> \"Mira cuánto hemos avanzado\", dijo uno de ellos, mirando atrás.\n\n"
            "> \"Mucho\", respondió otro en voz baja, \"pero no lo suficiente.\"\n\n"
            "El viento traía rumores de lugares lejanos, y cada paso adelante traía un nuevo aliado, "
            "un nuevo peligro o una nueva pregunta."
        ),
        "direction_with_prompt": "Siguiendo el camino elegido - *{prompt}* - se encontraron",
        "direction_without_prompt": "Se encontraron",
        "direction_heading": "Dirección de la Historia",
        "footer": (
            "*Este es un capítulo de plantilla. Edítalo a tu gusto o configura una clave de un "
            "proveedor de IA para activar la generación automática.*"
        ),
    },
    "fr": {
        "beginning": (
            "# Chapitre {chapter_number} : Le Commencement\n\n"
            "**{characters}** s'arrêta au seuil de *{setting}*, respirant l'air étrange d'un lieu que "
            "personne n'avait encore vraiment vu. Ce qui allait suivre marquerait le début de leur "
            "aventure de {genre}.\n\n"
            "## Les Premiers Pas\n\n"
            "Chaque ombre semblait cacher un secret et chaque bruit lointain annonçait une découverte. "
            "Les récits sur cet endroit ne s'accordaient sur presque rien, sauf sur un point : personne "
            "n'en revenait inchangé.\n\n"
            "> « Toujours décidés ? » demanda l'un d'eux, la voix presque couverte par le murmure de {setting}.\n\n"
            "Ils échangèrent un regard, partagés entre l'appréhension et l'impatience. Faire demi-tour "
            "n'était plus possible depuis longtemps.\n\n"
            "**« Nous sommes venus ensemble, »** répondit enfin quelqu'un. **« Nous finirons ensemble. »**\n\n"
            "Ils avancèrent alors, et leur voyage de {genre} commença pour de bon."
        ),
        "continuation": (
            "# Chapitre {chapter_number} : L'Aventure Continue\n\n"
            "La route qui menait **{characters}** à travers *{setting}* ne cessait de bifurquer vers "
            "l'imprévu. Ce qui n'était au départ qu'une simple mission était devenu bien plus vaste.\n\n"
            "## Nouveaux Développements\n\n"
            "{direction} face à des épreuves qui mirent à l'essai leurs talents et leur confiance mutuelle.\n\n"
            "Les fils de {genre} de leur histoire se resserraient. Les vieux mystères refaisaient surface "
            "un à un, les liens se renforçaient et l'ampleur réelle de leur quête devenait plus nette "
            "chaque jour.\n\n"
            "> « Regardez le chemin parcouru, » dit l'un d'eux en se retournant.\n\n"
            "> « Long, » répondit un autre à voix basse, « mais pas encore assez. »\n\n"
            "Le vent portait des rumeurs de contrées lointaines, et chaque pas apportait un nouvel allié, "
            "un nouveau danger ou une nouvelle question."
        ),
        "direction_with_prompt": "Suivant la voie choisie - *{prompt}* - ils se retrouvèrent",
        "direction_without_prompt": "Ils se retrouvèrent",
        "direction_heading": "Direction de l'Histoire",
        "footer": (
            "*Ceci est un chapitre modèle. Modifiez-le selon vos envies ou configurez une clé de "
            "fournisseur d'IA pour activer la génération automatique.*"
        ),
    },
}


_TITLE_PATTERNS = (
    "The {genre} of {first_character}",
    "{first_character} and the {setting_tail}",
    "Chronicles of {first_setting}",
    "The {first_setting_or_mysterious} {genre}",
    "{first_character}'s Quest",
    "Legends of {setting_head}",
    "The {genre} Chronicles",
    "{first_character} in {first_setting_or_wonderland}",
)


def supported_template_languages() -> tuple[str, ...]:
    return tuple(_CHAPTER_TEMPLATES)


def generate_template_chapter(
    chapter_number: Any,
    characters: Optional[str],
    setting: Optional[str],
    genre: Optional[str],
    prompt: Optional[str] = None,
    language_code: Optional[str] = DEFAULT_LANGUAGE,
) -> str:
    """Return a markdown chapter built from the story parameters.

    Chapter one uses the "beginning" body and every later chapter the
    "continuation" body. Unknown language codes use the English bodies.
    """

    number = _coerce_chapter_number(chapter_number)
    characters_text = _text(characters) or "Our heroes"
    setting_text = _text(setting) or "an unknown land"
    genre_text = (_text(genre) or "story").lower()
    prompt_text = _text(prompt)

    code = (language_code or DEFAULT_LANGUAGE).strip().lower()
    templates = _CHAPTER_TEMPLATES.get(code)
    if templates is None:
        LOGGER.info("No template chapter body for language '%s'; using '%s'.", code, DEFAULT_LANGUAGE)
        templates = _CHAPTER_TEMPLATES[DEFAULT_LANGUAGE]

    if prompt_text:
        direction = templates["direction_with_prompt"].format(prompt=prompt_text.lower())
    else:
        direction = templates["direction_without_prompt"]

    body_key = "beginning" if number == 1 else "continuation"
    body = templates[body_key].format(
        chapter_number=number,
        characters=characters_text,
        setting=setting_text,
        genre=genre_text,
        direction=direction,
    )

    sections = [body]
    if prompt_text:
        sections.append(f"### {templates['direction_heading']}\n*{prompt_text}*")
    sections.append("---")
    sections.append(templates["footer"])
    return "\n\n".join(sections)


def generate_fallback_title(
    genre: Optional[str],
    characters: Optional[str],
    setting: Optional[str],
    *,
    rng: Optional[random.Random] = None,
) -> str:
    """Pick one of the title patterns at random and fill it from the story fields."""

    genre_text = _text(genre) or "Adventure"
    character_words = _text(characters).split()
    setting_words = _text(setting).split()

    values = {
        "genre": genre_text,
        "first_character": character_words[0] if character_words else "Heroes",
        "setting_tail": " ".join(setting_words[-2:]) or "Unknown",
        "first_setting": setting_words[0] if setting_words else "Adventure",
        "first_setting_or_mysterious": setting_words[0] if setting_words else "Mysterious",
        "setting_head": " ".join(setting_words[:2]) or "Old",
        "first_setting_or_wonderland": setting_words[0] if setting_words else "Wonderland",
    }
    chooser = rng or random
    return chooser.choice(_TITLE_PATTERNS).format(**values)


def manual_chapter_template(chapter_number: Any, genre: Optional[str], characters: Optional[str], setting: Optional[str]) -> str:
    number = _coerce_chapter_number(chapter_number)
    if number == 1:
        hint = (
            f"This is the beginning of your {(_text(genre) or 'story').lower()} story featuring "
            f"{_text(characters) or 'your characters'} in {_text(setting) or 'your setting'}."
        )
    else:
        hint = "Continue your story from where the previous chapter left off."
    return f"Chapter {number}\n\nWrite your chapter content here...\n\n{hint}"


def default_chapter_prompt(chapter_number: Any, characters: Optional[str], setting: Optional[str]) -> str:
    number = _coerce_chapter_number(chapter_number)
    if number == 1:
        return (
            f"Begin the story by introducing {_text(characters) or 'the main characters'} in "
            f"{_text(setting) or 'the setting'}. Set up the main conflict or adventure."
        )
    return (
        f"Continue the story from where chapter {number - 1} left off. "
        "Advance the plot and develop the characters further."
    )


def _coerce_chapter_number(value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return 1
    return number if number > 0 else 1


def _text(value: Optional[Any]) -> str:
    if value is None:
        return ""
    return str(value).strip()


__all__ = [
    "default_chapter_prompt",
    "generate_fallback_title",
    "generate_template_chapter",
    "manual_chapter_template",
    "supported_template_languages",
]
