"""Helpers for OpenAI-style ``/models`` and ``/chat/completions`` endpoints.

The async calls take a configured client and close it when done, so each
backend only decides base URL, headers and timeout.
"""

from __future__ import annotations

from typing import Any

import httpx

from quickllm.errors import (
    AuthError,
    ConnectivityError,
    ProviderError,
    ProviderTimeoutError,
    QuotaError,
    RateLimitError,
    UpstreamError,
)
from quickllm.log import get_logger

logger = get_logger(__name__)

TEMPERATURE = 0.7
TOP_P = 0.9
MAX_TOKENS = 2000


def chat_payload(model: str, system_prompt: str, text: str) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": text},
        ],
        "temperature": TEMPERATURE,
        "max_tokens": MAX_TOKENS,
        "top_p": TOP_P,
    }


def bearer_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def error_detail(response: httpx.Response) -> str:
    """Provider-supplied error message, if the body carries one."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text[:200]


def status_error(response: httpx.Response, kind: str, label: str) -> ProviderError:
    status = response.status_code
    match status:
        case 401:
            return AuthError(f"Invalid {label} API key. Please check your API key in settings.", kind)
        case 429:
            return RateLimitError(f"{label} API rate limit exceeded. Please wait and try again.", kind)
        case 400:
            detail = error_detail(response) or f"Invalid request to {label} API"
            return UpstreamError(f"{label} API error: {detail}", kind, status_code=status)
        case 402:
            return QuotaError(
                f"Insufficient credits on {label}. Please check your account balance.", kind
            )
        case _:
            return UpstreamError(
                f"{label} error: HTTP {status} {error_detail(response)}".rstrip(),
                kind,
                status_code=status,
            )


def transport_error(exc: httpx.HTTPError, kind: str, label: str) -> ProviderError:
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError("Request timed out. Please try again.", kind)
    if isinstance(exc, httpx.TransportError):
        return ConnectivityError(
            f"Cannot connect to {label} API. Please check your internet connection.", kind
        )
    return UpstreamError(f"{label} error: {exc}", kind)


def completion_text(response: httpx.Response, kind: str) -> str:
    """Extract ``choices[0].message.content``; a missing or blank payload is an error."""
    try:
        data = response.json()
        content = data["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError):
        content = None
    if not isinstance(content, str) or not content.strip():
        raise UpstreamError("No response from provider", kind, status_code=response.status_code)
    return content.strip()


def model_ids(response: httpx.Response) -> list[str]:
    data = response.json().get("data") or []
    return [m["id"] for m in data if isinstance(m, dict) and "id" in m]


def missing_key_message(label: str) -> str:
    return f"{label} API key not configured. Please add your API key in settings."


async def catalog_available(client: httpx.AsyncClient, kind: str) -> bool:
    """True when ``GET /models`` answers 200, which also proves the key."""
    try:
        async with client:
            response = await client.get("/models")
    except httpx.HTTPError as e:
        logger.info("provider_unavailable", provider=kind, error=str(e) or type(e).__name__)
        return False
    return response.status_code == 200


async def catalog_models(client: httpx.AsyncClient, kind: str) -> list[str]:
    try:
        async with client:
            response = await client.get("/models")
        response.raise_for_status()
        return model_ids(response)
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        logger.warning("provider_models_unavailable", provider=kind, error=str(e))
        return []


async def chat_completion(
    client: httpx.AsyncClient,
    kind: str,
    label: str,
    *,
    model: str,
    system_prompt: str,
    text: str,
) -> str:
    try:
        async with client:
            response = await client.post(
                "/chat/completions", json=chat_payload(model, system_prompt, text)
            )
    except httpx.HTTPError as e:
        raise transport_error(e, kind, label) from e

    if not response.is_success:
        raise status_error(response, kind, label)
    return completion_text(response, kind)
