"""Async LiteLLM client wrapper: completion, embedding, streaming, key validation.

All LLM + embedding calls in the ingest and answering pipelines route through
this module. LiteLLM's own retries are off by default (``num_retries=0``):
backoff on rate limits is the job of ``repoqa.concurrency.RetryExecutor``, and
every other error must fail fast.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a LiteLLM model string ('openai' if absent)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama) or provider unknown

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


async def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    num_retries: int = 0,
) -> str:
    """Call litellm.acompletion(). Returns the content string.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature (0 = deterministic).
        num_retries: LiteLLM-level retries (0 = leave backoff to the caller).

    Returns:
        The text content of the first choice ("" if the model returned none).
    """
    response = await litellm.acompletion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


async def embed(model: str, text: str, num_retries: int = 0) -> list[float]:
    """Call litellm.aembedding(). Returns the embedding vector.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        text: Text to embed.
        num_retries: LiteLLM-level retries.

    Returns:
        Embedding as a list of floats.
    """
    response = await litellm.aembedding(
        model=model,
        input=[text],
        num_retries=num_retries,
    )
    return list(response.data[0]["embedding"])


async def stream_completion(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
) -> AsyncIterator[str]:
    """Yield text deltas from a streaming litellm.acompletion() call.

    Empty deltas (role-only or finish chunks) are skipped. Errors raised by the
    provider, before or during the stream, propagate to the consumer.
    """
    response = await litellm.acompletion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        stream=True,
    )
    async for chunk in response:
        if not chunk.choices:
            continue
        delta = chunk.choices[0].delta.content
        if delta:
            yield delta
