"""
Compliance Analyzer - Judges a source file against the security knowledge base.

The provider is asked for a single JSON verdict. Replies that are not valid
JSON degrade to an UNKNOWN verdict carrying the raw reply as the summary.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from codeshield.errors import ProviderError, ProviderUnavailable
from codeshield.github_client import detect_language_from_path
from codeshield.rag.context import RAGContextBuilder
from codeshield.rag.store import ScoredChunk
from codeshield.utils import setup_logging

if TYPE_CHECKING:
    from codeshield.openai_client import GenerativeProvider

logger = setup_logging()

# Only the head of large files is sent to the provider
MAX_FILE_CHARS = 8000

ANALYSIS_SYSTEM_PROMPT = """You are CodeShield AI, a private, compliance-aware security assistant.
You review source files against the organization's security knowledge base.
Use ONLY the provided context to judge compliance."""

VERDICT_INSTRUCTIONS = """Respond in the following JSON format only:
{
  "status": "COMPLIANT" | "PARTIALLY_COMPLIANT" | "NON_COMPLIANT",
  "risk": "LOW" | "MEDIUM" | "HIGH",
  "summary": "short explanation of the main issues",
  "secure_example": "a secure code example following company policy",
  "insecure_example": "an example of the insecure pattern to avoid"
}"""


class ComplianceStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    PARTIALLY_COMPLIANT = "PARTIALLY_COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"
    UNKNOWN = "UNKNOWN"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class Verdict:
    """Compliance verdict for one file."""

    status: ComplianceStatus = ComplianceStatus.UNKNOWN
    risk: RiskLevel = RiskLevel.MEDIUM
    summary: str = ""
    secure_example: str = ""
    insecure_example: str = ""
    knowledge_sources: list[str] = field(default_factory=list)
    source: str = ""
    language: str = "all"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "risk": self.risk.value,
            "summary": self.summary,
            "secureExample": self.secure_example,
            "insecureExample": self.insecure_example,
            "knowledgeSources": list(self.knowledge_sources),
            "source": self.source,
            "language": self.language,
        }


def _strip_fence(text: str) -> str:
    """Remove a Markdown code fence wrapped around the whole reply."""
    text = text.strip()
    if text.startswith("```"):
        parts = text.split("\n", 1)
        text = parts[1] if len(parts) > 1 else ""
    if text.endswith("```"):
        text = text.rsplit("```", 1)[0]
    return text.strip()


def _normalize_status(value: Any) -> ComplianceStatus:
    try:
        return ComplianceStatus(str(value).strip().upper())
    except ValueError:
        return ComplianceStatus.UNKNOWN


def _normalize_risk(value: Any) -> RiskLevel:
    try:
        return RiskLevel(str(value).strip().upper())
    except ValueError:
        return RiskLevel.MEDIUM


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def parse_verdict(raw: str, knowledge_sources: list[str]) -> Verdict:
    """
    Parse a provider reply into a Verdict.

    Args:
        raw: Provider reply, expected to be a JSON object
        knowledge_sources: Sources of the retrieved chunks, in retrieval order

    Returns:
        Verdict; unparseable replies give UNKNOWN/MEDIUM with the raw reply
        as summary
    """
    try:
        parsed = json.loads(_strip_fence(raw or ""))
    except ValueError:
        parsed = None

    if not isinstance(parsed, dict):
        logger.warning("Compliance reply was not a JSON object, returning UNKNOWN verdict")
        return Verdict(summary=raw or "", knowledge_sources=list(knowledge_sources))

    return Verdict(
        status=_normalize_status(parsed.get("status")),
        risk=_normalize_risk(parsed.get("risk")),
        summary=_text(parsed.get("summary")),
        secure_example=_text(parsed.get("secure_example")),
        insecure_example=_text(parsed.get("insecure_example")),
        knowledge_sources=list(knowledge_sources),
    )


class ComplianceAnalyzer:
    """
    Produces compliance verdicts for source files.

    Steps:
    1. Truncate the file to MAX_FILE_CHARS
    2. Assemble retrieved chunks into grounding context
    3. Ask the provider for a JSON verdict and parse it
    """

    def __init__(
        self,
        provider: "GenerativeProvider",
        context_builder: RAGContextBuilder | None = None,
    ):
        self.provider = provider
        self.context_builder = context_builder or RAGContextBuilder()

    def build_prompt(self, file_path: str, file_content: str, context_text: str) -> str:
        return (
            f"Analyze the following file for compliance with company security policy.\n\n"
            f"File: {file_path}\n\n"
            f"```\n{file_content[:MAX_FILE_CHARS]}\n```\n\n"
            f"Relevant security knowledge:\n\n{context_text}\n\n"
            f"{VERDICT_INSTRUCTIONS}"
        )

    def analyze(
        self,
        file_path: str,
        file_content: str,
        retrieved: list[ScoredChunk],
    ) -> Verdict:
        """
        Analyze one file.

        Args:
            file_path: Path of the file inside its repository
            file_content: File text
            retrieved: Knowledge chunks retrieved for the file

        Returns:
            Verdict with source and language filled in; never raises for
            provider failures
        """
        knowledge_sources = [result.chunk.source for result in retrieved]
        language = detect_language_from_path(file_path)

        if not self.provider.available:
            logger.warning("Generative provider not configured. Returning UNKNOWN verdict.")
            verdict = Verdict(
                summary="AI provider is not configured; compliance could not be assessed.",
                knowledge_sources=knowledge_sources,
            )
        else:
            context = self.context_builder.assemble_context(retrieved)
            prompt = self.build_prompt(file_path, file_content, context.context_text)
            try:
                reply = self.provider.complete([ANALYSIS_SYSTEM_PROMPT], prompt)
            except (ProviderUnavailable, ProviderError) as e:
                logger.warning(f"Compliance analysis failed for {file_path}: {e}")
                verdict = Verdict(
                    summary=f"Compliance analysis failed: {e}",
                    knowledge_sources=knowledge_sources,
                )
            else:
                verdict = parse_verdict(reply, knowledge_sources)

        verdict.source = file_path
        verdict.language = language
        logger.info(f"Analyzed {file_path}: {verdict.status.value} / {verdict.risk.value}")
        return verdict
