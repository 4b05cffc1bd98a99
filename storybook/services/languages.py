from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class LanguageConfig:
    code: str
    name: str
    instruction: str


LANGUAGE_CONFIGS: Dict[str, LanguageConfig] = {
    config.code: config
    for config in (
        LanguageConfig("en", "English", "Write in clear, engaging English."),
        LanguageConfig("es", "Spanish", "Escribe en español claro y atractivo."),
        LanguageConfig("fr", "French", "Écrivez en français clair et engageant."),
        LanguageConfig("de", "German", "Schreiben Sie in klarem, ansprechendem Deutsch."),
        LanguageConfig("it", "Italian", "Scrivi in italiano chiaro e coinvolgente."),
        LanguageConfig("pt", "Portuguese", "Escreva em português claro e envolvente."),
        LanguageConfig("ru", "Russian", "Пишите на ясном, увлекательном русском языке."),
        LanguageConfig("ja", "Japanese", "明確で魅力的な日本語で書いてください。"),
        LanguageConfig("ko", "Korean", "명확하고 매력적인 한국어로 작성하세요."),
        LanguageConfig("zh", "Chinese", "用清晰、引人入胜的中文写作。"),
        LanguageConfig("ar", "Arabic", "اكتب باللغة العربية الواضحة والجذابة."),
        LanguageConfig("hi", "Hindi", "स्पष्ट, आकर्षक हिंदी में लिखें।"),
        LanguageConfig("nl", "Dutch", "Schrijf in helder, boeiend Nederlands."),
        LanguageConfig("sv", "Swedish", "Skriv på klar, engagerande svenska."),
        LanguageConfig("no", "Norwegian", "Skriv på klar, engasjerende norsk."),
        LanguageConfig("da", "Danish", "Skriv på klart, engagerende dansk."),
        LanguageConfig("fi", "Finnish", "Kirjoita selkeää, mukaansatempaavaa suomea."),
        LanguageConfig("pl", "Polish", "Pisz w jasnym, angażującym języku polskim."),
        LanguageConfig("tr", "Turkish", "Açık, ilgi çekici Türkçe yazın."),
        LanguageConfig("th", "Thai", "เขียนเป็นภาษาไทยที่ชัดเจนและน่าสนใจ"),
    )
}


def resolve_language(code: Optional[str]) -> LanguageConfig:
    """Return the configuration for ``code``, falling back to English."""

    normalized = (code or "").strip().lower()
    return LANGUAGE_CONFIGS.get(normalized, LANGUAGE_CONFIGS[DEFAULT_LANGUAGE])
