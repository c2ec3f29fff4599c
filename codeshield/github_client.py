"""
GitHub client - Source host access for repository scanning.

Provides:
- parse_repo_url: owner/repo from an https://github.com/... URL
- detect_language_from_path: language tag from a file extension
- GitHubClient: list repositories, list blob paths of a branch, fetch raw files
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import quote, urlparse

import requests

from .config import GitHubSettings
from .errors import InvalidRepositoryUrl, SourceHostError
from .utils import setup_logging

logger = setup_logging()


# Extension -> language tag; anything else is language-agnostic
_EXTENSION_LANGUAGES = [
    ((".js", ".jsx", ".ts", ".tsx"), "javascript"),
    ((".py",), "python"),
    ((".go",), "go"),
    ((".java",), "java"),
    ((".rb",), "ruby"),
    ((".cs",), "csharp"),
]


def detect_language_from_path(file_path: str | None) -> str:
    if not file_path:
        return "all"
    for extensions, language in _EXTENSION_LANGUAGES:
        if file_path.endswith(extensions):
            return language
    return "all"


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def source_tag(self, file_path: str) -> str:
        """Knowledge store source for a file of this repository."""
        return f"github:{self.full_name}:{file_path}"


def parse_repo_url(repo_url: str) -> RepoRef:
    """
    Parse a GitHub repository URL.

    Raises:
        InvalidRepositoryUrl: If the URL has no owner/repo path
    """
    parsed = urlparse(repo_url or "")
    parts = [p for p in parsed.path.split("/") if p]
    if not parsed.scheme or not parsed.netloc or len(parts) < 2:
        raise InvalidRepositoryUrl(f"Invalid GitHub repository URL: {repo_url}")

    repo = parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return RepoRef(owner=parts[0], repo=repo)


class GitHubClient:
    """Thin requests wrapper over the GitHub REST API."""

    def __init__(self, settings: GitHubSettings, session: requests.Session | None = None):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def available(self) -> bool:
        return bool(self.settings.token)

    def _headers(self, accept: str = "application/vnd.github.v3+json") -> Dict[str, str]:
        if not self.settings.token:
            raise SourceHostError("GITHUB_TOKEN is not configured")
        return {
            "Authorization": f"Bearer {self.settings.token}",
            "Accept": accept,
            "User-Agent": "codeshield",
        }

    def _get(self, path: str, accept: str | None = None, **params: Any) -> requests.Response:
        headers = self._headers(accept) if accept else self._headers()
        url = f"{self.settings.api_base}{path}"
        try:
            response = self.session.get(
                url, headers=headers, params=params or None, timeout=self.settings.timeout_seconds
            )
        except requests.exceptions.RequestException as e:
            raise SourceHostError(f"GitHub request failed: {e}") from e

        if response.status_code != 200:
            raise SourceHostError(
                f"GitHub API error {response.status_code} for {path}: {response.text[:300]}"
            )
        return response

    def list_user_repos(self) -> List[Dict[str, Any]]:
        """Repositories of the authenticated user, most recently updated first."""
        response = self._get("/user/repos", per_page=100, sort="updated", direction="desc")
        return [
            {
                "id": repo.get("id"),
                "name": repo.get("name"),
                "fullName": repo.get("full_name"),
                "private": repo.get("private"),
                "defaultBranch": repo.get("default_branch"),
                "htmlUrl": repo.get("html_url"),
            }
            for repo in response.json()
        ]

    def list_files(self, repo_url: str, branch: str | None = None) -> Dict[str, Any]:
        """
        List file paths of a repository branch.

        Args:
            repo_url: Repository URL
            branch: Branch name (the repository default branch if omitted)

        Returns:
            Dict with owner, repo, branch and files [{path, type, size}]
        """
        ref = parse_repo_url(repo_url)
        if not branch:
            branch = self._get(f"/repos/{ref.full_name}").json().get("default_branch")

        tree = self._get(
            f"/repos/{ref.full_name}/git/trees/{quote(branch, safe='')}", recursive=1
        ).json()
        files = [
            {"path": item["path"], "type": item["type"], "size": item.get("size")}
            for item in tree.get("tree", [])
            if item.get("type") == "blob"
        ]

        logger.info(f"Listed {len(files)} files in {ref.full_name}@{branch}")
        return {"owner": ref.owner, "repo": ref.repo, "branch": branch, "files": files}

    def fetch_file(self, repo_url: str, path: str) -> bytes:
        """Raw bytes of one file on the default branch."""
        ref = parse_repo_url(repo_url)
        response = self._get(
            f"/repos/{ref.full_name}/contents/{quote(path)}",
            accept="application/vnd.github.v3.raw",
        )

        if response.headers.get("Content-Type", "").startswith("application/json"):
            # Some proxies ignore the raw media type and return the JSON envelope
            payload = response.json()
            if isinstance(payload, dict) and "content" in payload:
                return base64.b64decode(payload["content"])

        return response.content

    def close(self) -> None:
        self.session.close()
