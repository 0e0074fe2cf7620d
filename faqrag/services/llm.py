"""
LLM and embeddings client for OpenAI-compatible endpoints.

Features:
  - Retry with exponential backoff + jitter (handles 429, 500, 502, 503, 504)
  - Provider fallback for chat (primary → fallback)
  - Batched embeddings over the same retry path
  - Reusable client (connection pooling)
"""

import asyncio
import logging
import random
import time
from typing import Any, Optional

import httpx

from ..core.config import get_settings
from ..core.errors import ConfigurationError, UpstreamUnavailable
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

# ── Reusable client (connection pool) ────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=120, write=30, pool=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Call on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Provider config ──────────────────────────────────────────────────

def _get_provider_config(provider: Optional[str] = None) -> tuple[str, str, str]:
    """Returns (base_url, api_key, default_model) for a provider."""
    settings = get_settings()
    p = (provider or get_flags().llm_provider).lower()

    if p == "gemini":
        return (
            "https://generativelanguage.googleapis.com/v1beta/openai",
            settings.gemini_api_key,
            settings.default_llm_model,
        )
    # openai (default)
    return settings.openai_base_url, settings.openai_api_key, settings.default_llm_model


def _require_key(provider: str, api_key: str) -> None:
    if not api_key:
        raise ConfigurationError(
            f"No API key for LLM provider '{provider}'. "
            "Set OPENAI_API_KEY or GEMINI_API_KEY."
        )


def _headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


# ── Retry logic ──────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


async def _retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Execute request with exponential backoff + jitter."""
    last_exc = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = await client.request(method, url, **kwargs)

            if resp.status_code not in RETRYABLE_STATUS:
                if resp.status_code >= 400:
                    logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
                resp.raise_for_status()
                return resp

            # Retryable error
            retry_after = resp.headers.get("retry-after")
            delay = float(retry_after) if retry_after else min(
                MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1)
            )
            logger.warning(
                "LLM %d (attempt %d/%d) — retrying in %.1fs",
                resp.status_code, attempt + 1, MAX_RETRIES + 1, delay,
            )
            last_exc = httpx.HTTPStatusError(
                f"{resp.status_code}", request=resp.request, response=resp
            )
            await asyncio.sleep(delay)

        except httpx.TimeoutException as e:
            delay = min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))
            logger.warning(
                "LLM timeout (attempt %d/%d) — retrying in %.1fs",
                attempt + 1, MAX_RETRIES + 1, delay,
            )
            last_exc = e
            await asyncio.sleep(delay)

        except httpx.HTTPStatusError:
            raise  # Non-retryable HTTP errors
        except httpx.TransportError as e:
            last_exc = e
            if attempt < MAX_RETRIES:
                delay = min(MAX_DELAY, BASE_DELAY * (2 ** attempt))
                await asyncio.sleep(delay)
            continue

    raise last_exc or RuntimeError("LLM request failed after retries")


def _translate_http_error(e: Exception) -> Exception:
    """Map httpx failures onto the service error taxonomy."""
    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code in (401, 403):
        return ConfigurationError(
            f"LLM provider rejected the API key ({e.response.status_code})"
        )
    if isinstance(e, (httpx.HTTPError, RuntimeError)):
        return UpstreamUnavailable(f"LLM connection failed: {e}")
    return e


# ── Chat completion ──────────────────────────────────────────────────

async def chat(
    messages: list[dict],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    provider: Optional[str] = None,
) -> dict:
    """
    Chat completion with retry + optional provider fallback.
    Returns the full API response as dict.
    """
    settings = get_settings()
    active_provider = (provider or get_flags().llm_provider).lower()
    base_url, api_key, default_model = _get_provider_config(provider)
    _require_key(active_provider, api_key)

    payload: dict[str, Any] = {
        "model": model or default_model,
        "messages": messages,
        "temperature": temperature if temperature is not None else settings.default_llm_temperature,
        "max_tokens": max_tokens or settings.default_llm_max_tokens,
    }

    url = f"{base_url.rstrip('/')}/chat/completions"
    start = time.monotonic()

    try:
        resp = await _retry_request(
            _get_client(), "POST", url, json=payload, headers=_headers(api_key)
        )
        data = resp.json()
        elapsed = time.monotonic() - start

        usage = data.get("usage", {})
        logger.info(
            "LLM chat: %dms | in=%d out=%d tokens | model=%s",
            int(elapsed * 1000),
            usage.get("prompt_tokens", 0),
            usage.get("completion_tokens", 0),
            payload["model"],
        )
        return data

    except httpx.HTTPError as e:
        elapsed = time.monotonic() - start
        logger.error("LLM failed after %.1fs: %s", elapsed, e)

        fallback = _get_fallback_provider(active_provider)
        if fallback and not provider:  # Only fallback once
            logger.info("Falling back to %s", fallback)
            return await chat(
                messages=messages, temperature=temperature,
                max_tokens=max_tokens, provider=fallback,
            )
        raise _translate_http_error(e) from e


def _get_fallback_provider(primary: str) -> Optional[str]:
    """Get fallback provider. Returns None if no fallback available."""
    settings = get_settings()
    if primary != "gemini" and settings.gemini_api_key:
        return "gemini"
    if primary != "openai" and settings.openai_api_key:
        return "openai"
    return None


async def chat_simple(
    prompt: str,
    system: str = "",
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> str:
    """Send a prompt, get a string back."""
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    response = await chat(
        messages=messages, model=model,
        temperature=temperature, max_tokens=max_tokens,
    )
    return response["choices"][0]["message"]["content"] or ""


def active_model() -> str:
    return _get_provider_config()[2]


# ── Embeddings ───────────────────────────────────────────────────────

async def embed(texts: list[str], model: Optional[str] = None) -> list[list[float]]:
    """Embed texts in batches. Order of the result matches the input."""
    if not texts:
        return []

    settings = get_settings()
    provider = get_flags().llm_provider.lower()
    base_url, api_key, _ = _get_provider_config()
    _require_key(provider, api_key)

    url = f"{base_url.rstrip('/')}/embeddings"
    batch_size = max(1, settings.embedding_batch_size)
    vectors: list[list[float]] = []

    for i in range(0, len(texts), batch_size):
        batch = texts[i:i + batch_size]
        try:
            resp = await _retry_request(
                _get_client(), "POST", url,
                json={"model": model or settings.embedding_model, "input": batch},
                headers=_headers(api_key),
            )
        except httpx.HTTPError as e:
            logger.error("Embedding request failed (batch %d): %s", i // batch_size, e)
            raise _translate_http_error(e) from e

        data = sorted(resp.json().get("data", []), key=lambda d: d.get("index", 0))
        if len(data) != len(batch):
            raise UpstreamUnavailable(
                f"Embedding response size mismatch: sent {len(batch)}, got {len(data)}"
            )
        vectors.extend(d["embedding"] for d in data)

    logger.info("Embedded %d texts (model=%s)", len(texts), model or settings.embedding_model)
    return vectors


# ── Token estimation ─────────────────────────────────────────────────

def estimate_tokens(text: str) -> int:
    """
    Estimate token count without tiktoken dependency.
    Rule of thumb: ~4 chars per token for English.
    """
    return max(1, len(text) // 4)
