"""Multi-provider LLM adapter supporting Anthropic, OpenAI, OpenRouter, Groq, and Ollama.

Providers return ``None`` on any transport or decoding failure. Callers that
need structured output go through :meth:`LLMClient.generate_json`, which
turns a missing or unparsable response into :class:`LLMResponseError`.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

import requests

from .config import LLMSettings

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096


class LLMResponseError(ValueError):
    """Raised when the model returns nothing usable."""


def _post_json(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: int) -> Optional[dict]:
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except (urllib.error.URLError, http.client.HTTPException, TimeoutError, ValueError) as exc:
        logger.warning("LLM request to %s failed: %s", url, exc)
        return None


class LLMProvider:
    """Base class for LLM providers."""

    name = "base"

    def generate(self, system_prompt: str, prompt: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> Optional[str]:
        """Generate a response from the LLM."""
        raise NotImplementedError


class AnthropicProvider(LLMProvider):
    """Anthropic Claude API provider."""

    name = "anthropic"

    def __init__(self, model: str, api_key: str, timeout: int = 120):
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.endpoint = "https://api.anthropic.com/v1/messages"

    def generate(self, system_prompt: str, prompt: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> Optional[str]:
        if not self.api_key:
            logger.warning("Anthropic API key is not configured")
            return None

        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt

        parsed = _post_json(
            self.endpoint,
            payload,
            {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            self.timeout,
        )
        if parsed is None:
            return None
        try:
            return "".join(
                block.get("text", "") for block in parsed["content"] if block.get("type") == "text"
            ) or None
        except (KeyError, TypeError):
            logger.warning("Unexpected Anthropic response shape")
            return None


class OpenAIProvider(LLMProvider):
    """OpenAI API provider (also works with other OpenAI-compatible APIs)."""

    name = "openai"

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://api.openai.com/v1/chat/completions",
        timeout: int = 120,
    ):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout

    def _messages(self, system_prompt: str, prompt: str):
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def generate(self, system_prompt: str, prompt: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> Optional[str]:
        if not self.api_key:
            return None

        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "messages": self._messages(system_prompt, prompt),
                "temperature": 0.1,
                "max_tokens": max_tokens,
            },
            {"Authorization": f"Bearer {self.api_key}"},
            self.timeout,
        )
        if parsed is None:
            return None
        try:
            return self._extract_response(parsed)
        except (KeyError, IndexError, TypeError):
            logger.warning("Unexpected %s response shape", self.name)
            return None

    @staticmethod
    def _extract_response(parsed: dict) -> Optional[str]:
        return parsed["choices"][0]["message"].get("content") or None


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter API provider (OpenAI-compatible, multi-model gateway)."""

    name = "openrouter"

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 120,
    ):
        super().__init__(model, api_key, endpoint, timeout)

    @staticmethod
    def _extract_response(parsed: dict) -> Optional[str]:
        """Extract response text, handling reasoning models that return empty content."""
        msg = parsed["choices"][0]["message"]
        content = msg.get("content") or ""
        if content.strip():
            return content
        # Reasoning models put output in 'reasoning' field
        reasoning = msg.get("reasoning") or ""
        if reasoning.strip():
            return reasoning
        return content or None


class GroqProvider(OpenAIProvider):
    """Groq cloud API provider."""

    name = "groq"

    def __init__(self, model: str, api_key: str, timeout: int = 60):
        super().__init__(model, api_key, "https://api.groq.com/openai/v1/chat/completions", timeout)

    def generate(self, system_prompt: str, prompt: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> Optional[str]:
        if not self.api_key:
            return None

        try:
            response = requests.post(
                self.endpoint,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "model": self.model,
                    "messages": self._messages(system_prompt, prompt),
                    "temperature": 0.1,
                    "max_tokens": max_tokens,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, IndexError) as exc:
            logger.warning("Groq request failed: %s", exc)
            return None


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider."""

    name = "ollama"

    def __init__(self, model: str, endpoint: str, timeout: int = 120):
        self.model = model
        self.endpoint = endpoint or "http://127.0.0.1:11434/api/generate"
        self.timeout = timeout

    def generate(self, system_prompt: str, prompt: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> Optional[str]:
        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "system": system_prompt,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": 0.1, "num_predict": max_tokens},
            },
            {},
            self.timeout,
        )
        if parsed is None:
            return None
        return parsed.get("response")


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the first top-level ``{...}`` object embedded in ``text``.

    Models often wrap JSON in prose or code fences. The scan tracks string
    literals so braces inside values do not end the object early. When the
    balanced span fails to parse, the widest ``{`` .. ``}`` span is tried.

    Raises:
        LLMResponseError: if no JSON object can be recovered.
    """
    if not text:
        raise LLMResponseError("Empty response from model")

    start = text.find("{")
    if start == -1:
        raise LLMResponseError("No JSON object found in model response")

    depth = 0
    in_string = False
    escaped = False
    end = -1
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                end = idx
                break

    candidates = []
    if end != -1:
        candidates.append(text[start:end + 1])
    last = text.rfind("}")
    if last > start:
        candidates.append(text[start:last + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise LLMResponseError("Could not parse JSON object from model response")


class LLMClient:
    """Provider-agnostic structured generation."""

    def __init__(self, settings: Optional[LLMSettings] = None, provider: Optional[LLMProvider] = None):
        self.settings = settings or LLMSettings()
        self.provider = provider or self._create_provider()

    @property
    def provider_name(self) -> str:
        return self.provider.name

    def _create_provider(self) -> LLMProvider:
        """Create the appropriate provider based on configuration."""
        s = self.settings
        provider_name = (s.provider or "anthropic").lower()

        if provider_name == "openai":
            endpoint = s.endpoint or "https://api.openai.com/v1/chat/completions"
            return OpenAIProvider(s.model, s.api_key, endpoint, s.timeout)
        if provider_name == "openrouter":
            endpoint = s.endpoint or "https://openrouter.ai/api/v1/chat/completions"
            return OpenRouterProvider(s.model, s.api_key, endpoint, s.timeout)
        if provider_name == "groq":
            return GroqProvider(s.model, s.api_key, s.timeout)
        if provider_name == "ollama":
            return OllamaProvider(s.model, s.endpoint, s.timeout)
        if provider_name != "anthropic":
            logger.warning("Unknown LLM provider %r, using anthropic", s.provider)
        return AnthropicProvider(s.model, s.api_key, s.timeout)

    def generate(self, system_prompt: str, user_prompt: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> Optional[str]:
        return self.provider.generate(system_prompt, user_prompt, max_tokens)

    def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> Dict[str, Any]:
        """Generate and parse a JSON object.

        Raises:
            LLMResponseError: on transport failure or unparsable output.
        """
        text = self.generate(system_prompt, user_prompt, max_tokens)
        if not text:
            raise LLMResponseError(f"No response from {self.provider_name}")
        return extract_json_object(text)
