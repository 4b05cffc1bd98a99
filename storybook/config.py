import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _default_sqlite_uri() -> str:
    instance_path = BASE_DIR / "instance"
    instance_path.mkdir(exist_ok=True)
    return f"sqlite:///{instance_path / 'storybook.db'}"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Base configuration shared across environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", _default_sqlite_uri())
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # The credential itself is looked up per request; only its variable name lives here.
    COMPLETION_API_KEY_ENV = "DEEPSEEK_API_KEY"
    COMPLETION_BASE_URL = os.environ.get("COMPLETION_BASE_URL", "https://api.deepseek.com")
    COMPLETION_MODEL = os.environ.get("COMPLETION_MODEL", "deepseek-chat")
    COMPLETION_PROVIDER = "DeepSeek (OpenAI-compatible API)"
    COMPLETION_MAX_TOKENS = int(os.environ.get("COMPLETION_MAX_TOKENS", "800"))
    COMPLETION_TEMPERATURE = float(os.environ.get("COMPLETION_TEMPERATURE", "0.7"))
    COMPLETION_REQUEST_TIMEOUT = 30.0

    STREAM_CHAPTERS = _env_flag("STREAM_CHAPTERS", True)
    STREAM_PACING_SECONDS = float(os.environ.get("STREAM_PACING_SECONDS", "0.05"))
    GENERATION_TIMEOUT_SECONDS = float(os.environ.get("GENERATION_TIMEOUT_SECONDS", "60"))
    AI_STATUS_CACHE_SECONDS = 30.0


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STREAM_PACING_SECONDS = 0.0
    AI_STATUS_CACHE_SECONDS = 0.0
