from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Protocol, Sequence

import requests

from .config import OpenAISettings
from .errors import ProviderError, ProviderUnavailable
from .utils import setup_logging

logger = setup_logging()


class OpenAIClientError(ProviderError):
    pass


class EmbeddingProvider(Protocol):
    @property
    def available(self) -> bool: ...

    def embed(self, text: str) -> List[float]: ...


class GenerativeProvider(Protocol):
    @property
    def available(self) -> bool: ...

    def complete(self, system_prompts: Sequence[str], user_prompt: str) -> str: ...


def chat_completion(
    settings: OpenAISettings,
    messages: List[Dict[str, str]],
    temperature: float | None = None,
    max_tokens: int | None = None,
    session: requests.Session | None = None,
    model_override: str | None = None,
) -> Dict[str, Any]:
    """Call an OpenAI-compatible chat completions endpoint with retry logic.

        POST {base_url}/chat/completions

    Args:
        settings: Provider configuration settings
        messages: List of chat messages
        temperature: Sampling temperature (defaults to settings.temperature)
        max_tokens: Optional cap on tokens in the response
        session: Pooled HTTP session to reuse
        model_override: Optional model name to use instead of settings.chat_model
    """
    if not settings.api_key:
        raise ProviderUnavailable(
            "Generative provider is not configured. Set OPENROUTER_API_KEY."
        )

    http = session or requests
    url = f"{settings.base_url}/chat/completions"
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.api_key}",
    }

    body: Dict[str, Any] = {
        "model": model_override or settings.chat_model,
        "messages": messages,
        "temperature": settings.temperature if temperature is None else temperature,
    }
    if max_tokens:
        body["max_tokens"] = max_tokens

    max_retries = max(1, settings.max_retries)
    last_err: Exception | None = None
    for attempt in range(1, max_retries + 1):
        try:
            resp = http.post(url, headers=headers, json=body, timeout=settings.timeout_seconds)
            if resp.status_code >= 400:
                raise OpenAIClientError(
                    f"Chat completion API error {resp.status_code}: {resp.text[:500]}"
                )

            data = resp.json()
            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as exc:
                raise OpenAIClientError(
                    f"Unexpected chat completion response: {json.dumps(data)[:500]}"
                ) from exc

            return {"content": content or "", "usage": data.get("usage", {})}

        except (requests.exceptions.RequestException, ValueError, OpenAIClientError) as exc:
            last_err = exc
            logger.warning(
                "chat_completion attempt %s/%s failed: %s", attempt, max_retries, str(exc)
            )
            if attempt < max_retries:
                time.sleep(settings.retry_backoff**attempt)

    raise OpenAIClientError(f"chat_completion failed after {max_retries} attempts: {last_err}")


class OpenAIProvider:
    """
    OpenAI-compatible embedding and chat provider.

    Implements both EmbeddingProvider and GenerativeProvider. A missing API
    key is reported through `available` rather than raised at construction;
    calls made anyway raise ProviderUnavailable.
    """

    def __init__(self, settings: OpenAISettings, session: requests.Session | None = None):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def available(self) -> bool:
        return bool(self.settings.api_key)

    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for a single text.

        Raises:
            ProviderUnavailable: If no API key is configured
            ProviderError: On transport failure, timeout or malformed response
        """
        if not self.available:
            raise ProviderUnavailable(
                "Embedding provider is not configured. Set OPENROUTER_API_KEY."
            )

        url = f"{self.settings.base_url}/embeddings"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }
        payload = {"model": self.settings.embedding_model, "input": text}

        max_retries = max(1, self.settings.max_retries)
        last_error: Exception | None = None
        for attempt in range(max_retries):
            try:
                response = self.session.post(
                    url, headers=headers, json=payload, timeout=self.settings.timeout_seconds
                )
            except requests.exceptions.Timeout:
                last_error = ProviderError("Embedding API timeout")
                logger.warning(f"Attempt {attempt + 1}/{max_retries}: Timeout")
                response = None
            except requests.exceptions.RequestException as e:
                last_error = ProviderError(f"Network error: {e}")
                logger.warning(f"Attempt {attempt + 1}/{max_retries}: {e}")
                response = None

            if response is not None:
                if response.status_code == 200:
                    return self._parse_embedding(response)

                last_error = ProviderError(
                    f"Embedding API error {response.status_code}: {response.text[:500]}"
                )
                # Don't retry client errors (4xx except 429)
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    raise last_error

            if attempt < max_retries - 1:
                sleep_time = self.settings.retry_backoff ** attempt
                logger.debug(f"Retrying embedding in {sleep_time}s...")
                time.sleep(sleep_time)

        raise last_error or ProviderError("Embedding generation failed")

    @staticmethod
    def _parse_embedding(response: requests.Response) -> List[float]:
        try:
            embedding = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError("Malformed embedding response") from e

        if not isinstance(embedding, list):
            raise ProviderError("Malformed embedding response: embedding is not a list")
        if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in embedding):
            raise ProviderError("Malformed embedding response: non-numeric element")

        return [float(x) for x in embedding]

    def complete(self, system_prompts: Sequence[str], user_prompt: str) -> str:
        messages = [{"role": "system", "content": prompt} for prompt in system_prompts]
        messages.append({"role": "user", "content": user_prompt})
        result = chat_completion(self.settings, messages, session=self.session)
        logger.debug(f"Chat completion usage: {result['usage']}")
        return result["content"]

    def close(self) -> None:
        self.session.close()
