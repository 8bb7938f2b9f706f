"""
Klara Backend — LLM Provider Adapter
======================================

What:  One call contract over several chat-completion APIs:
       `await adapter.complete(provider, prompt, context, model, api_key) -> str`
How:   Each provider is an entry in `PROVIDERS`, a pair of pure functions:
           build(prompt, context, model, api_key) -> ProviderRequest
           parse(payload) -> str
       The adapter owns the HTTP client and the error mapping; the pure
       functions own the wire shapes. Adding a provider means adding a
       `Provider` member plus its two functions, never touching callers.
Who:   ConversationService and NoteUpdateService.

Call policy:
    - one POST, no streaming, bounded by `provider_timeout_seconds`
    - no retry; a failed call surfaces to the caller as-is
    - every failure becomes ProviderCallError(provider, status, body)

Secrets:
    The user's key travels in the Authorization header (OpenAI) or in the
    query string (Gemini). Neither the key nor the request URL is ever logged.

Wire shapes:
    OpenAI   POST {openai_base_url}/chat/completions
             {"model", "messages": [{"role", "content"}], "max_tokens", "temperature"}
             → choices[0].message.content
    Gemini   POST {gemini_base_url}/models/{model}:generateContent?key=...
             {"contents": [{"parts": [{"text"}], "role": "user"}]}
             → candidates[0].content.parts[0].text
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from app.config import settings
from app.exceptions import ProviderCallError, ValidationError

logger = logging.getLogger(__name__)

CONTEXT_PREAMBLE = "Context from previous conversations:\n{context}"


class Provider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"

    @classmethod
    def parse(cls, tag: str) -> "Provider":
        """
        Converts a client-supplied provider tag into a Provider.

        Raises:
            ValidationError: the tag names no supported provider
        """
        try:
            return cls(tag)
        except ValueError:
            supported = ", ".join(f"'{p.value}'" for p in cls)
            raise ValidationError(
                message=f"Model must be one of {supported}",
                field="model",
                context={"received": tag},
            )


@dataclass(frozen=True)
class ProviderRequest:
    """Everything needed to issue one completion call. `params` may carry the key."""
    url: str
    json: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


def default_model(provider: Provider) -> str:
    """Model used when a caller does not pick one."""
    if provider is Provider.OPENAI:
        return settings.openai_default_model
    return settings.gemini_default_model


# ══════════════════════════════════════════════════════════════════════════
# OpenAI-style chat completions
# ══════════════════════════════════════════════════════════════════════════


def build_openai_request(prompt: str, context: str, model: str, api_key: str) -> ProviderRequest:
    messages: List[Dict[str, str]] = []
    if context:
        messages.append({"role": "system", "content": CONTEXT_PREAMBLE.format(context=context)})
    messages.append({"role": "user", "content": prompt})

    return ProviderRequest(
        url=f"{settings.openai_base_url.rstrip('/')}/chat/completions",
        json={
            "model": model,
            "messages": messages,
            "max_tokens": settings.openai_max_tokens,
            "temperature": settings.openai_temperature,
        },
        headers={"Authorization": f"Bearer {api_key}"},
    )


def parse_openai_response(payload: Dict[str, Any]) -> str:
    choices = payload.get("choices") or []
    if not choices:
        raise ValueError("no choices in response")
    content = (choices[0].get("message") or {}).get("content")
    if content is None:
        raise ValueError("first choice has no message content")
    return content


# ══════════════════════════════════════════════════════════════════════════
# Gemini-style generateContent
# ══════════════════════════════════════════════════════════════════════════


def build_gemini_request(prompt: str, context: str, model: str, api_key: str) -> ProviderRequest:
    # Gemini has no system role in this API version; context goes first as a user turn
    contents: List[Dict[str, Any]] = []
    if context:
        contents.append({
            "parts": [{"text": CONTEXT_PREAMBLE.format(context=context)}],
            "role": "user",
        })
    contents.append({"parts": [{"text": prompt}], "role": "user"})

    return ProviderRequest(
        url=f"{settings.gemini_base_url.rstrip('/')}/models/{quote(model, safe='')}:generateContent",
        json={"contents": contents},
        params={"key": api_key},
    )


def parse_gemini_response(payload: Dict[str, Any]) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise ValueError("no candidates in response")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts or "text" not in parts[0]:
        raise ValueError("first candidate has no text part")
    return parts[0]["text"]


@dataclass(frozen=True)
class ProviderSpec:
    build: Callable[[str, str, str, str], ProviderRequest]
    parse: Callable[[Dict[str, Any]], str]


PROVIDERS: Dict[Provider, ProviderSpec] = {
    Provider.OPENAI: ProviderSpec(build=build_openai_request, parse=parse_openai_response),
    Provider.GEMINI: ProviderSpec(build=build_gemini_request, parse=parse_gemini_response),
}


# ══════════════════════════════════════════════════════════════════════════
# Adapter
# ══════════════════════════════════════════════════════════════════════════


class ProviderAdapter:
    """
    Issues completion calls through a shared, long-lived httpx.AsyncClient.

    The client is created in the application lifespan and injected here, so
    connection pools are reused across requests and tests can pass a client
    built on httpx.MockTransport.
    """

    def __init__(self, http_client: httpx.AsyncClient, timeout: Optional[float] = None):
        self._client = http_client
        self._timeout = timeout or settings.provider_timeout_seconds

    async def complete(
        self,
        provider: Provider,
        prompt: str,
        context: str,
        model: Optional[str],
        api_key: str,
    ) -> str:
        """
        Sends one prompt and returns the first candidate's text.

        Args:
            provider: which API to call
            prompt:   the user turn, must be non-empty
            context:  assembled memory context; empty string adds no preamble
            model:    provider model id, or None for the configured default
            api_key:  the caller's key for `provider`

        Raises:
            ValidationError:   empty prompt
            ProviderCallError: transport error, timeout, non-2xx, bad payload
        """
        if not prompt:
            raise ValidationError(message="Prompt must not be empty", field="message")

        spec = PROVIDERS[provider]
        model = model or default_model(provider)
        request = spec.build(prompt, context, model, api_key)

        start = time.perf_counter()
        try:
            response = await self._client.post(
                request.url,
                json=request.json,
                headers=request.headers,
                params=request.params,
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            logger.warning("%s call timed out after %.0fs (model=%s)", provider.value, self._timeout, model)
            raise ProviderCallError(provider.value, f"{provider.value} request timed out")
        except httpx.HTTPError as e:
            # str(e) may include the request URL; log only the exception type
            logger.warning("%s transport error: %s (model=%s)", provider.value, type(e).__name__, model)
            raise ProviderCallError(provider.value, f"{provider.value} request failed: {type(e).__name__}")

        elapsed_ms = (time.perf_counter() - start) * 1000

        if response.status_code >= 400:
            logger.warning(
                "%s returned HTTP %d in %.0fms (model=%s)",
                provider.value, response.status_code, elapsed_ms, model,
            )
            raise ProviderCallError(
                provider.value,
                f"{provider.value} API error: HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            text = spec.parse(response.json())
        except (ValueError, AttributeError, TypeError) as e:
            logger.warning("%s returned an unusable payload: %s (model=%s)", provider.value, e, model)
            raise ProviderCallError(
                provider.value,
                f"no usable response from {provider.value}: {e}",
                status_code=response.status_code,
                body=response.text,
            )

        logger.info(
            "%s completion ok in %.0fms (model=%s, %d chars)",
            provider.value, elapsed_ms, model, len(text),
        )
        return text
