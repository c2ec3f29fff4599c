"""Tests for compliance verdict parsing and file analysis."""

import json

from codeshield.errors import ProviderError
from codeshield.rag.chunker import Chunk
from codeshield.rag.compliance import (
    MAX_FILE_CHARS,
    ComplianceAnalyzer,
    ComplianceStatus,
    RiskLevel,
    parse_verdict,
)
from codeshield.rag.store import ScoredChunk

from conftest import FakeProvider

VALID_REPLY = json.dumps({
    "status": "NON_COMPLIANT",
    "risk": "HIGH",
    "summary": "Passwords hashed with MD5.",
    "secure_example": "bcrypt.hashpw(pw, bcrypt.gensalt())",
    "insecure_example": "hashlib.md5(pw)",
})


def scored(source):
    return ScoredChunk(chunk=Chunk(content=f"rule from {source}", source=source), score=0.8)


class TestParseVerdict:
    def test_valid_json(self):
        verdict = parse_verdict(VALID_REPLY, ["hashing.md"])

        assert verdict.status is ComplianceStatus.NON_COMPLIANT
        assert verdict.risk is RiskLevel.HIGH
        assert verdict.summary == "Passwords hashed with MD5."
        assert verdict.secure_example == "bcrypt.hashpw(pw, bcrypt.gensalt())"
        assert verdict.insecure_example == "hashlib.md5(pw)"
        assert verdict.knowledge_sources == ["hashing.md"]

    def test_non_json_reply(self):
        verdict = parse_verdict("The file looks fine to me.", ["a.md", "b.md"])

        assert verdict.status is ComplianceStatus.UNKNOWN
        assert verdict.risk is RiskLevel.MEDIUM
        assert verdict.summary == "The file looks fine to me."
        assert verdict.secure_example == ""
        assert verdict.insecure_example == ""
        assert verdict.knowledge_sources == ["a.md", "b.md"]

    def test_fenced_json(self):
        verdict = parse_verdict(f"```json\n{VALID_REPLY}\n```", [])
        assert verdict.status is ComplianceStatus.NON_COMPLIANT

    def test_json_that_is_not_an_object(self):
        verdict = parse_verdict("[1, 2, 3]", [])
        assert verdict.status is ComplianceStatus.UNKNOWN
        assert verdict.summary == "[1, 2, 3]"

    def test_unknown_enum_values_are_normalized(self):
        verdict = parse_verdict(json.dumps({"status": "MAYBE", "risk": "extreme"}), [])
        assert verdict.status is ComplianceStatus.UNKNOWN
        assert verdict.risk is RiskLevel.MEDIUM

    def test_lowercase_values_are_accepted(self):
        verdict = parse_verdict(json.dumps({"status": "compliant", "risk": "low"}), [])
        assert verdict.status is ComplianceStatus.COMPLIANT
        assert verdict.risk is RiskLevel.LOW


class TestComplianceAnalyzer:
    def test_analyze_fills_source_language_and_sources(self, context_builder):
        provider = FakeProvider(reply=VALID_REPLY)
        analyzer = ComplianceAnalyzer(provider, context_builder)

        verdict = analyzer.analyze(
            "app/auth.py",
            "import hashlib\nhashlib.md5(pw)",
            [scored("hashing.md"), scored("hashing.md"), scored("jwt.md")],
        )

        assert verdict.source == "app/auth.py"
        assert verdict.language == "python"
        # One entry per retrieved chunk, not de-duplicated
        assert verdict.knowledge_sources == ["hashing.md", "hashing.md", "jwt.md"]
        assert verdict.status is ComplianceStatus.NON_COMPLIANT

    def test_file_is_truncated(self, context_builder):
        provider = FakeProvider(reply=VALID_REPLY)
        content = "x" * MAX_FILE_CHARS + "TAILMARKER"

        ComplianceAnalyzer(provider, context_builder).analyze("big.js", content, [])

        _, prompt = provider.calls[0]
        assert "x" * MAX_FILE_CHARS in prompt
        assert "TAILMARKER" not in prompt
        assert '"status"' in prompt

    def test_unavailable_provider(self, context_builder):
        analyzer = ComplianceAnalyzer(FakeProvider(available=False), context_builder)
        verdict = analyzer.analyze("main.go", "package main", [scored("go.md")])

        assert verdict.status is ComplianceStatus.UNKNOWN
        assert verdict.risk is RiskLevel.MEDIUM
        assert verdict.language == "go"
        assert verdict.knowledge_sources == ["go.md"]

    def test_provider_error(self, context_builder):
        provider = FakeProvider(complete_error=ProviderError("boom"))
        verdict = ComplianceAnalyzer(provider, context_builder).analyze("a.rb", "puts 1", [])

        assert verdict.status is ComplianceStatus.UNKNOWN
        assert verdict.language == "ruby"

    def test_to_dict_uses_camel_case(self, context_builder):
        verdict = ComplianceAnalyzer(FakeProvider(reply=VALID_REPLY), context_builder).analyze(
            "Service.cs", "class Service {}", [scored("dotnet.md")]
        )
        data = verdict.to_dict()

        assert data["status"] == "NON_COMPLIANT"
        assert data["risk"] == "HIGH"
        assert data["secureExample"] == "bcrypt.hashpw(pw, bcrypt.gensalt())"
        assert data["insecureExample"] == "hashlib.md5(pw)"
        assert data["knowledgeSources"] == ["dotnet.md"]
        assert data["language"] == "csharp"
