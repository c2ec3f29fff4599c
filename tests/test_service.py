"""End-to-end tests of RAGService on the in-memory backend."""

import pytest

from codeshield.errors import EmptyContent, UnsupportedFileType
from codeshield.rag.compliance import ComplianceStatus
from codeshield.rag.service import RAGService

from conftest import FakeGitHub, FakeProvider, sentence

POLICY = " ".join(
    [
        "Sign every JWT token with RS256 and keep the private key in a vault.",
        sentence("jwt", 30),
        "Hash every password with argon2id and a unique salt per user.",
        sentence("pw", 30),
    ]
)

AUTH_PY = (
    b"# Token helpers for the public API service used by every client application\n"
    b"import jwt\n\n"
    b"def sign(payload):\n"
    b"    return jwt.encode(payload, KEY, algorithm='RS256')\n"
)


@pytest.fixture
def provider():
    return FakeProvider(reply="Use RS256.\n```python\njwt.encode(p, key, algorithm='RS256')\n```")


@pytest.fixture
def service(test_settings, provider, context_builder):
    return RAGService(
        settings=test_settings,
        provider=provider,
        github=FakeGitHub({"src/auth.py": AUTH_PY}),
        context_builder=context_builder,
    )


class TestRAGService:
    @pytest.mark.asyncio
    async def test_ingest_then_query(self, service):
        result = await service.ingest(POLICY, {"source": "security.md"})
        assert result.chunks_processed > 0

        answer = await service.query("How should I sign a JWT token?")

        assert answer.sources == ["security.md"]
        assert answer.secure_code == "jwt.encode(p, key, algorithm='RS256')"
        assert answer.explanation == "Use RS256."
        assert not answer.used_fallback

    @pytest.mark.asyncio
    async def test_replace_existing(self, service):
        first = await service.ingest(POLICY, {"source": "security.md"})
        await service.ingest(POLICY, {"source": "security.md"}, replace_existing=True)

        assert await service.store.count() == first.chunks_processed

    @pytest.mark.asyncio
    async def test_blank_query_rejected(self, service):
        with pytest.raises(EmptyContent):
            await service.query("   ")

    @pytest.mark.asyncio
    async def test_query_on_empty_store_uses_no_sources(self, service):
        answer = await service.query("How do I hash a password?")
        assert answer.sources == []

    @pytest.mark.asyncio
    async def test_ingest_upload_markdown(self, service):
        result = await service.ingest_upload(POLICY.encode("utf-8"), "text/markdown", "python-auth.md")

        assert result.source == "python-auth.md"
        assert result.language == "python"
        assert result.chunks_processed > 0

    @pytest.mark.asyncio
    async def test_ingest_upload_unsupported_type(self, service):
        with pytest.raises(UnsupportedFileType):
            await service.ingest_upload(b"\x89PNG", "image/png", "diagram.png")

    @pytest.mark.asyncio
    async def test_scan_repository_file(self, service):
        result = await service.scan_repository_file("https://github.com/octo/repo", "src/auth.py")

        assert result.source == "github:octo/repo:src/auth.py"
        assert result.language == "python"
        assert result.chunks_processed == 1

        hits = await service.store.search([1.0] * 8, k=8)
        assert [h.chunk.category for h in hits] == ["github_code"]

    @pytest.mark.asyncio
    async def test_analyze_repository_file(self, service, provider):
        await service.ingest(POLICY, {"source": "security.md"})
        provider.reply = '{"status": "COMPLIANT", "risk": "LOW", "summary": "Uses RS256."}'

        verdict = await service.analyze_repository_file("https://github.com/octo/repo.git", "src/auth.py")

        assert verdict.status is ComplianceStatus.COMPLIANT
        assert verdict.source == "github:octo/repo:src/auth.py"
        assert verdict.language == "python"
        assert verdict.knowledge_sources
        assert set(verdict.knowledge_sources) == {"security.md"}

    @pytest.mark.asyncio
    async def test_analyze_blank_file_rejected(self, service):
        with pytest.raises(EmptyContent):
            await service.analyze_file("empty.py", "  ")

    @pytest.mark.asyncio
    async def test_close_releases_clients(self, service):
        await service.initialize()
        await service.close()
        assert service.github.closed
