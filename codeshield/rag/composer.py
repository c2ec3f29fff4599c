"""
Answer Composer - Grounded answers from retrieved security knowledge.

Builds the grounding context, calls the generative provider and splits the
reply into code blocks and prose. Falls back to a deterministic answer
built from the retrieved chunks when the provider is unavailable.

Fenced block convention (positional):
- 1st fenced block -> secure_code
- 2nd fenced block -> insecure_code
- any further blocks stay in the explanation text
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from codeshield.errors import ProviderError, ProviderUnavailable
from codeshield.rag.context import RAGContextBuilder, unique_sources
from codeshield.rag.store import ScoredChunk
from codeshield.utils import setup_logging

if TYPE_CHECKING:
    from codeshield.openai_client import GenerativeProvider

logger = setup_logging()


SYSTEM_PROMPT = """You are CodeShield AI, a private, compliance-aware security assistant.
Use ONLY the provided context to answer. If the answer is not in the context, say you don't know.
Always:
- Prefer secure, modern algorithms and practices
- Avoid deprecated or insecure patterns
- Highlight any forbidden or dangerous practices if present in the context
When you show code, put the secure example in the first fenced code block and,
if relevant, the insecure pattern to avoid in the second fenced code block."""

FORBIDDEN_WARNING = """WARNING: The user's query appears to request a forbidden practice. You MUST:
1. Reject the request clearly
2. Explain why it's forbidden
3. Provide an approved alternative from the secure practices in the context"""

# Score above which a forbidden-type chunk marks the query as forbidden
FORBIDDEN_SCORE_THRESHOLD = 0.7
DEFAULT_FORBIDDEN_REASON = "Violates security standards"

_FENCED_BLOCK = re.compile(r"```([^\n`]*)\n(.*?)```", re.DOTALL)
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class FencedBlock:
    language: str
    code: str
    start: int
    end: int


@dataclass
class ParsedReply:
    secure_code: str | None
    insecure_code: str | None
    explanation: str


@dataclass
class ComposedAnswer:
    """Structured answer returned to the HTTP layer."""

    explanation: str
    secure_code: str | None = None
    insecure_code: str | None = None
    sources: list[str] = field(default_factory=list)
    is_forbidden: bool = False
    forbidden_message: str | None = None
    approved_alternative: str | None = None
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "secure_code": self.secure_code,
            "insecure_code": self.insecure_code,
            "explanation": self.explanation,
            "is_forbidden": self.is_forbidden,
            "forbidden_message": self.forbidden_message,
            "approved_alternative": self.approved_alternative,
            "danger_reason": (
                "This code violates security best practices and company policies."
                if self.insecure_code
                else None
            ),
            "sources": list(self.sources),
            "used_fallback": self.used_fallback,
        }


def extract_fenced_blocks(text: str) -> list[FencedBlock]:
    """All ``` fenced blocks in order of appearance. The language tag is optional."""
    return [
        FencedBlock(
            language=match.group(1).strip(),
            code=match.group(2).strip(),
            start=match.start(),
            end=match.end(),
        )
        for match in _FENCED_BLOCK.finditer(text or "")
    ]


def parse_reply(text: str) -> ParsedReply:
    """
    Split a model reply into secure code, insecure code and explanation.

    Args:
        text: Raw model reply

    Returns:
        ParsedReply; missing blocks are None, the explanation is the reply
        with only the first (secure) block removed
    """
    text = text or ""
    blocks = extract_fenced_blocks(text)
    extracted = blocks[:2]

    explanation = text
    if extracted:
        explanation = text[:extracted[0].start] + text[extracted[0].end:]
    explanation = _EXCESS_BLANK_LINES.sub("\n\n", explanation).strip()

    return ParsedReply(
        secure_code=extracted[0].code if len(extracted) > 0 else None,
        insecure_code=extracted[1].code if len(extracted) > 1 else None,
        explanation=explanation,
    )


def _chunk_type(result: ScoredChunk) -> str:
    return str(result.chunk.metadata.get("type", "secure"))


class AnswerComposer:
    """
    Composes grounded answers for security questions.

    Steps:
    1. Assemble retrieved chunks into a grounding context
    2. Detect forbidden-practice queries from the ranked chunks
    3. Call the generative provider (or build a fallback answer)
    4. Parse the reply into code blocks and explanation
    """

    def __init__(
        self,
        provider: "GenerativeProvider",
        context_builder: RAGContextBuilder | None = None,
    ):
        self.provider = provider
        self.context_builder = context_builder or RAGContextBuilder()

    def compose(self, query: str, retrieved: list[ScoredChunk]) -> ComposedAnswer:
        """
        Answer a query from retrieved chunks.

        Args:
            query: User question
            retrieved: Ranked search results

        Returns:
            ComposedAnswer; never raises for provider failures
        """
        secure = [r for r in retrieved if _chunk_type(r) != "forbidden"]
        forbidden = [r for r in retrieved if _chunk_type(r) == "forbidden"]
        is_forbidden = bool(forbidden) and forbidden[0].score > FORBIDDEN_SCORE_THRESHOLD

        forbidden_message = None
        approved_alternative = None
        if is_forbidden:
            forbidden_message = forbidden[0].chunk.metadata.get("reason") or DEFAULT_FORBIDDEN_REASON
            approved_alternative = secure[0].chunk.content if secure else None

        sources = unique_sources(retrieved)

        if not self.provider.available:
            logger.warning("Generative provider not configured. Using fallback answer.")
            return self._fallback_answer(
                query, secure, sources, is_forbidden, forbidden_message, approved_alternative
            )

        context = self.context_builder.assemble_context(retrieved)
        system_prompts = [SYSTEM_PROMPT]
        if is_forbidden:
            system_prompts[0] = f"{SYSTEM_PROMPT}\n\n{FORBIDDEN_WARNING}"
        system_prompts.append(f"Security knowledge context:\n\n{context.context_text}")

        try:
            reply = self.provider.complete(system_prompts, query)
        except (ProviderUnavailable, ProviderError) as e:
            logger.warning(f"Generative provider failed, using fallback answer: {e}")
            return self._fallback_answer(
                query, secure, sources, is_forbidden, forbidden_message, approved_alternative
            )

        parsed = parse_reply(reply)
        return ComposedAnswer(
            explanation=parsed.explanation,
            secure_code=parsed.secure_code,
            insecure_code=parsed.insecure_code,
            sources=sources,
            is_forbidden=is_forbidden,
            forbidden_message=forbidden_message,
            approved_alternative=approved_alternative,
        )

    def _fallback_answer(
        self,
        query: str,
        secure: list[ScoredChunk],
        sources: list[str],
        is_forbidden: bool,
        forbidden_message: str | None,
        approved_alternative: str | None,
    ) -> ComposedAnswer:
        """Deterministic answer built from the top non-forbidden chunk."""
        if is_forbidden:
            lines = [
                "Request Rejected",
                "",
                "This practice is forbidden per company security policy.",
                "",
                f"Reason: {forbidden_message}",
            ]
            if approved_alternative:
                lines += ["", "Approved Alternative:", approved_alternative]
            lines += ["", "Please use the approved secure practices instead."]
            explanation = "\n".join(lines)
        elif secure:
            explanation = (
                "Based on company security policies, here's the approved approach:\n\n"
                f"{secure[0].chunk.content}\n\n"
                "Note: This response is generated from your organization's security "
                "knowledge base. Configure OPENROUTER_API_KEY for AI-generated answers."
            )
        else:
            explanation = (
                f'I understand you\'re asking about: "{query}"\n\n'
                "To provide secure coding guidance, please upload security documentation "
                "(PDF or Markdown files) to build the knowledge base."
            )

        return ComposedAnswer(
            explanation=explanation,
            sources=sources,
            is_forbidden=is_forbidden,
            forbidden_message=forbidden_message,
            approved_alternative=approved_alternative,
            used_fallback=True,
        )
