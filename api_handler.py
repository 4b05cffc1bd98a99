# api_handler.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

import openai

LOGGER = logging.getLogger(__name__)


class GenerationFailed(RuntimeError):
    """Raised when the completion provider cannot produce text."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class OpenAICompatibleGenerator:
    """
    Chat Completions wrapper for OpenAI-compatible providers (DeepSeek by default).

    - ``generate_response`` returns the whole completion in one call.
    - ``stream_response`` yields text deltas as the provider produces them and
      drops back to a single ``generate_response`` call when the streaming
      request cannot be set up.

    Every provider failure surfaces as :class:`GenerationFailed`.
    Compatible with OpenAI Python SDK >= 1.0.
    """

    def __init__(
        self,
        model_name: str,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        default_max_tokens: int = 800,
        default_temperature: Optional[float] = 0.7,
        timeout: Optional[float] = None,
        client: Any = None,
    ) -> None:
        self.model_name = (model_name or "").strip()
        self.api_key = (api_key or "").strip()
        self.base_url = (base_url or "").strip() or None
        self.default_max_tokens = int(default_max_tokens or 800)
        self.default_temperature = default_temperature

        if not self.model_name:
            raise GenerationFailed("A model name is required for the completion client.")

        if client is not None:
            self._client = client
            return
        if not self.api_key:
            raise GenerationFailed("An API key is required for the completion client.")
        try:
            self._client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=timeout)
        except openai.OpenAIError as exc:
            raise GenerationFailed(f"Unable to initialise the completion client: {exc}") from exc

    # ---------------- public API ----------------
    def generate_response(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_new_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> str:
        kwargs = self._build_kwargs(prompt, system_prompt, max_new_tokens, temperature, top_p)
        try:
            resp = self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise GenerationFailed(f"Chat completion request failed: {exc}") from exc

        text = self._extract_text_from_chat(resp).strip()
        if text:
            return text
        snippet = self._shorten_debug(str(resp))
        raise GenerationFailed(f"Chat completion returned no text. Raw response (truncated): {snippet}")

    def stream_response(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_new_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> Iterator[str]:
        """Yield completion deltas; nothing is requested until the first ``next()``."""

        kwargs = self._build_kwargs(prompt, system_prompt, max_new_tokens, temperature, top_p)
        kwargs["stream"] = True
        try:
            stream = self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            LOGGER.warning("Streaming completion unavailable (%s); requesting the full text instead.", exc)
            yield self.generate_response(
                prompt,
                system_prompt=system_prompt,
                max_new_tokens=max_new_tokens,
                temperature=temperature,
                top_p=top_p,
            )
            return

        try:
            for chunk in stream:
                delta = self._extract_delta(chunk)
                if delta:
                    yield delta
        except GeneratorExit:
            raise
        except Exception as exc:
            raise GenerationFailed(f"Completion stream interrupted: {exc}") from exc
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()

    def signature(self) -> Tuple[str, str]:
        # Never return raw secrets
        redacted = (self.api_key[:4] + "…" + self.api_key[-4:]) if self.api_key else ""
        return (self.model_name, redacted)

    # ---------------- internal helpers ----------------
    def _build_kwargs(
        self,
        prompt: str,
        system_prompt: Optional[str],
        max_new_tokens: Optional[int],
        temperature: Optional[float],
        top_p: Optional[float],
    ) -> Dict[str, Any]:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("prompt must be a non-empty string.")
        max_tokens = int(max_new_tokens if max_new_tokens is not None else self.default_max_tokens)
        if max_tokens <= 0:
            raise ValueError("max_new_tokens must be positive.")

        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        effective_temperature = temperature if temperature is not None else self.default_temperature
        if effective_temperature is not None:
            kwargs["temperature"] = float(effective_temperature)
        if top_p is not None:
            kwargs["top_p"] = float(top_p)
        return kwargs

    # ---------------- extractors ----------------
    def _extract_text_from_chat(self, resp: Any) -> str:
        choices = getattr(resp, "choices", []) or []
        if not choices:
            return ""
        first = choices[0]
        msg = getattr(first, "message", None)
        if isinstance(msg, dict):
            content = msg.get("content")
        else:
            content = getattr(msg, "content", None)
        if isinstance(content, list):
            parts: List[str] = []
            for p in content:
                if isinstance(p, dict) and p.get("type") == "text":
                    parts.append(str(p.get("text") or ""))
            return "\n".join([p for p in parts if p])
        return str(content or getattr(first, "text", "") or "")

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        choices = getattr(chunk, "choices", None) or []
        if not choices:
            return ""
        delta = getattr(choices[0], "delta", None)
        if delta is None:
            return ""
        if isinstance(delta, dict):
            content = delta.get("content")
        else:
            content = getattr(delta, "content", None)
        return content if isinstance(content, str) else ""

    @staticmethod
    def _shorten_debug(s: str, limit: int = 1200) -> str:
        s = s.replace("\n", " ")
        return (s[:limit] + "…") if len(s) > limit else s
