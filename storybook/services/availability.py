"""Decide whether AI generation should be attempted at all."""

from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional

from flask import current_app

STATUS_CACHE_KEY = "storybook.ai_status"


def get_completion_api_key() -> Optional[str]:
    """Look up the provider credential for the current request.

    The environment is consulted on every call so a key added to the process
    environment takes effect without a restart. An explicit
    ``COMPLETION_API_KEY`` config value wins over the environment.
    """

    app = current_app
    configured = app.config.get("COMPLETION_API_KEY")
    if configured:
        return str(configured).strip() or None
    env_name = app.config.get("COMPLETION_API_KEY_ENV", "DEEPSEEK_API_KEY")
    value = os.environ.get(env_name, "").strip()
    return value or None


def ai_available() -> bool:
    return get_completion_api_key() is not None


def ai_status() -> Dict[str, Any]:
    """Return the payload served to status badges, cached for a short while."""

    app = current_app
    ttl = float(app.config.get("AI_STATUS_CACHE_SECONDS") or 0)
    now = time.monotonic()
    cached = app.extensions.get(STATUS_CACHE_KEY)
    if ttl > 0 and isinstance(cached, tuple) and now - cached[0] < ttl:
        return dict(cached[1])

    env_name = app.config.get("COMPLETION_API_KEY_ENV", "DEEPSEEK_API_KEY")
    available = ai_available()
    provider = app.config.get("COMPLETION_PROVIDER", "OpenAI-compatible API")
    status = {
        "aiAvailable": available,
        "message": (
            f"{provider} features are available."
            if available
            else f"Add the {env_name} environment variable to enable AI features."
        ),
        "provider": provider,
        "model": app.config.get("COMPLETION_MODEL"),
    }
    if ttl > 0:
        app.extensions[STATUS_CACHE_KEY] = (now, status)
    return dict(status)
