"""Shared fakes and fixtures for the CodeShield test suite."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from codeshield.config import OpenAISettings, RAGSettings, Settings
from codeshield.errors import SourceHostError
from codeshield.github_client import parse_repo_url
from codeshield.rag.context import RAGContextBuilder

# Each dimension of a fake embedding counts one keyword
VOCAB = ("jwt", "token", "password", "hash", "encrypt", "sql", "auth", "secret")


class FakeProvider:
    """Deterministic keyword-count embeddings and canned chat replies."""

    def __init__(
        self,
        reply: str = "",
        available: bool = True,
        dimensions: int = len(VOCAB),
        fail_on: str | None = None,
        embed_error: Exception | None = None,
        complete_error: Exception | None = None,
    ):
        self.reply = reply
        self._available = available
        self.dimensions = dimensions
        self.fail_on = fail_on
        self.embed_error = embed_error
        self.complete_error = complete_error
        self.embedded: List[str] = []
        self.calls: List[tuple] = []

    @property
    def available(self) -> bool:
        return self._available

    def embed(self, text: str) -> List[float]:
        self.embedded.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        if self.fail_on and self.fail_on in text:
            return [0.0] * (self.dimensions + 1)

        lowered = text.lower()
        vector = [float(lowered.count(word)) for word in VOCAB]
        return (vector + [0.0] * self.dimensions)[: self.dimensions]

    def complete(self, system_prompts, user_prompt: str) -> str:
        self.calls.append((list(system_prompts), user_prompt))
        if self.complete_error is not None:
            raise self.complete_error
        return self.reply


class WhitespaceEncoding:
    """Tokenizer stand-in: one token per whitespace-separated word."""

    def __init__(self):
        self._ids: Dict[str, int] = {}
        self._words: List[str] = []

    def encode(self, text: str) -> List[int]:
        ids = []
        for word in text.split():
            if word not in self._ids:
                self._ids[word] = len(self._words)
                self._words.append(word)
            ids.append(self._ids[word])
        return ids

    def decode(self, tokens: List[int]) -> str:
        return " ".join(self._words[t] for t in tokens)


class FakeGitHub:
    """In-memory source host keyed by file path."""

    available = True

    def __init__(self, files: Dict[str, bytes] | None = None):
        self.files = files or {}
        self.closed = False

    def list_user_repos(self) -> List[Dict[str, Any]]:
        return [{"name": "repo", "fullName": "octo/repo"}]

    def list_files(self, repo_url: str, branch: str | None = None) -> Dict[str, Any]:
        ref = parse_repo_url(repo_url)
        return {
            "owner": ref.owner,
            "repo": ref.repo,
            "branch": branch or "main",
            "files": [{"path": p, "type": "blob", "size": len(b)} for p, b in self.files.items()],
        }

    def fetch_file(self, repo_url: str, path: str) -> bytes:
        parse_repo_url(repo_url)
        if path not in self.files:
            raise SourceHostError(f"GitHub API error 404 for {path}")
        return self.files[path]

    def close(self) -> None:
        self.closed = True


def sentence(prefix: str, words: int) -> str:
    """A sentence of `words` unique words ending with a period."""
    body = [f"{prefix}w{i}" for i in range(words)]
    body[-1] += "."
    return " ".join(body)


@pytest.fixture
def encoding():
    return WhitespaceEncoding()


@pytest.fixture
def context_builder(encoding):
    return RAGContextBuilder(max_tokens=4000, encoding=encoding)


@pytest.fixture
def test_settings():
    """Small chunk sizes and keyword-sized embeddings."""
    return Settings(
        openai=OpenAISettings(api_key=""),
        rag=RAGSettings(
            embedding_dimensions=len(VOCAB),
            chunk_target_tokens=60,
            chunk_overlap_tokens=10,
            chunk_min_tokens=20,
            embed_workers=2,
        ),
    )
