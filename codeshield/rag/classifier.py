"""
Chunk Classifier - Infers language, topic, type and severity for a chunk.

Keyword heuristics only. False positives are expected and acceptable;
classification never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, asdict

from codeshield.utils import setup_logging

logger = setup_logging()


DEFAULT_LANGUAGE = "all"
DEFAULT_TOPIC = "general"
DEFAULT_TYPE = "secure"
DEFAULT_SEVERITY = "warning"

# Matched against the source hint (filename or source tag), first match wins
LANGUAGE_KEYWORDS: list[tuple[str, list[str]]] = [
    ("javascript", ["node", "js", "javascript"]),
    ("python", ["python", "py"]),
    ("go", ["go"]),
]

# Matched against content in priority order, first match wins
TOPIC_KEYWORDS: list[tuple[str, list[str]]] = [
    ("jwt", ["jwt", "token"]),
    ("password_hashing", ["password", "hash"]),
    ("encryption", ["encrypt", "crypto"]),
    ("authentication", ["auth", "authentication"]),
]

FORBIDDEN_KEYWORDS = ["forbidden", "must not", "never", "avoid"]
CRITICAL_KEYWORDS = ["critical", "vulnerability", "exploit"]

FORBIDDEN_REASON = "Violates company security policy"


def _compile(keywords: list[str]) -> re.Pattern[str]:
    return re.compile("|".join(re.escape(k) for k in keywords), re.IGNORECASE)


_LANGUAGE_PATTERNS = [(lang, _compile(kws)) for lang, kws in LANGUAGE_KEYWORDS]
_TOPIC_PATTERNS = [(topic, _compile(kws)) for topic, kws in TOPIC_KEYWORDS]
_FORBIDDEN_PATTERN = _compile(FORBIDDEN_KEYWORDS)
_CRITICAL_PATTERN = _compile(CRITICAL_KEYWORDS)


@dataclass(frozen=True)
class ChunkClassification:
    """Inferred metadata for one chunk."""

    language: str = DEFAULT_LANGUAGE
    topic: str = DEFAULT_TOPIC
    type: str = DEFAULT_TYPE
    severity: str = DEFAULT_SEVERITY

    @property
    def is_forbidden(self) -> bool:
        return self.type == "forbidden"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def infer_language(source_hint: str | None) -> str:
    if not source_hint:
        return DEFAULT_LANGUAGE
    for language, pattern in _LANGUAGE_PATTERNS:
        if pattern.search(source_hint):
            return language
    return DEFAULT_LANGUAGE


def infer_topic(content: str) -> str:
    for topic, pattern in _TOPIC_PATTERNS:
        if pattern.search(content):
            return topic
    return DEFAULT_TOPIC


def classify(content: str, source_hint: str | None = None) -> ChunkClassification:
    """
    Classify a chunk by keyword presence.

    Args:
        content: Chunk text
        source_hint: Filename or source tag used for language inference

    Returns:
        ChunkClassification with defaults for anything not matched
    """
    content = content or ""

    result = ChunkClassification(
        language=infer_language(source_hint),
        topic=infer_topic(content),
        type="forbidden" if _FORBIDDEN_PATTERN.search(content) else DEFAULT_TYPE,
        severity="critical" if _CRITICAL_PATTERN.search(content) else DEFAULT_SEVERITY,
    )

    logger.debug(
        f"Classified chunk from '{source_hint}': language={result.language} "
        f"topic={result.topic} type={result.type} severity={result.severity}"
    )
    return result
