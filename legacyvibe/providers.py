"""Repository content providers: GitHub REST and local checkouts.

Both expose the same three calls used by the analysis pipeline::

    list_files(owner, repo) -> [FileNode]
    read_files(owner, repo, paths, max_size_bytes) -> {path: text}
    fetch_manifests(owner, repo) -> [Manifest]
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import requests

from .config import DEFAULT_MAX_FETCH_FILES, DEFAULT_MAX_FILE_SIZE_KB, GitHubSettings
from .models import FileNode, Manifest

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = (
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    "out",
    "coverage",
    "__pycache__",
    ".venv",
    "venv",
)

MANIFEST_FILES = (
    "package.json",
    "package-lock.json",
    "composer.json",
    "Gemfile",
    "requirements.txt",
    "go.mod",
    "Cargo.toml",
    "pom.xml",
    "build.gradle",
    "pyproject.toml",
    "pubspec.yaml",
)


class RepositoryError(RuntimeError):
    """Raised when a repository listing cannot be retrieved."""


def is_excluded(path: str) -> bool:
    """True when any path segment is a build, VCS or dependency directory."""
    return any(part in EXCLUDED_DIRS for part in path.split("/"))


class RepositoryProvider:
    """Base class for repository providers."""

    max_fetch_files = DEFAULT_MAX_FETCH_FILES

    def list_files(self, owner: str, repo: str) -> List[FileNode]:
        raise NotImplementedError

    def read_files(
        self,
        owner: str,
        repo: str,
        paths: Iterable[str],
        max_size_bytes: int = DEFAULT_MAX_FILE_SIZE_KB * 1024,
    ) -> Dict[str, str]:
        raise NotImplementedError

    def fetch_manifests(self, owner: str, repo: str) -> List[Manifest]:
        contents = self.read_files(owner, repo, MANIFEST_FILES, max_size_bytes=10 * 1024 * 1024)
        return [Manifest(path=p, content=contents[p]) for p in MANIFEST_FILES if p in contents]


class GitHubProvider(RepositoryProvider):
    """GitHub REST v3 client built on ``requests``."""

    def __init__(self, settings: Optional[GitHubSettings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or GitHubSettings()
        self.session = session or requests.Session()
        self.session.headers.update(self._headers())

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"
        return headers

    def _get(self, path: str, **params) -> dict:
        url = f"{self.settings.api_url.rstrip('/')}{path}"
        response = self.session.get(url, params=params or None, timeout=self.settings.timeout)
        response.raise_for_status()
        return response.json()

    def default_branch(self, owner: str, repo: str) -> str:
        return self._get(f"/repos/{owner}/{repo}").get("default_branch") or "main"

    def list_files(self, owner: str, repo: str) -> List[FileNode]:
        """Recursive tree of the default branch, minus excluded directories."""
        try:
            branch = self.default_branch(owner, repo)
            tree = self._get(f"/repos/{owner}/{repo}/git/trees/{branch}", recursive="1")
        except (requests.RequestException, ValueError) as exc:
            raise RepositoryError(f"Failed to fetch file tree: {exc}") from exc

        if tree.get("truncated"):
            logger.warning("GitHub truncated the tree listing for %s/%s", owner, repo)

        nodes = []
        for item in tree.get("tree", []):
            kind = item.get("type")
            if kind not in ("blob", "tree"):
                continue
            path = item.get("path", "")
            if is_excluded(path):
                continue
            nodes.append(
                FileNode(
                    path=path,
                    type="file" if kind == "blob" else "dir",
                    size=item.get("size"),
                )
            )
        return nodes

    def read_files(
        self,
        owner: str,
        repo: str,
        paths: Iterable[str],
        max_size_bytes: int = DEFAULT_MAX_FILE_SIZE_KB * 1024,
    ) -> Dict[str, str]:
        contents: Dict[str, str] = {}
        for path in list(paths)[: self.max_fetch_files]:
            try:
                data = self._get(f"/repos/{owner}/{repo}/contents/{path}")
            except (requests.RequestException, ValueError) as exc:
                logger.warning("Failed to fetch %s: %s", path, exc)
                continue

            if not isinstance(data, dict) or not data.get("content"):
                continue
            size = data.get("size") or 0
            if size > max_size_bytes:
                logger.info("Skipping large file: %s (%.2fKB)", path, size / 1024)
                continue
            try:
                contents[path] = base64.b64decode(data["content"]).decode("utf-8")
            except (ValueError, UnicodeDecodeError) as exc:
                logger.warning("Could not decode %s: %s", path, exc)
        return contents

    def fetch_manifests(self, owner: str, repo: str) -> List[Manifest]:
        manifests = []
        for name in MANIFEST_FILES:
            try:
                data = self._get(f"/repos/{owner}/{repo}/contents/{name}")
            except (requests.RequestException, ValueError):
                # Missing manifests are the common case.
                continue
            if isinstance(data, dict) and data.get("content"):
                try:
                    text = base64.b64decode(data["content"]).decode("utf-8")
                except (ValueError, UnicodeDecodeError):
                    continue
                manifests.append(Manifest(path=name, content=text))
        return manifests

    def list_repositories(self) -> List[dict]:
        """Repositories visible to the configured token."""
        try:
            repos = self._get("/user/repos", per_page="100", sort="updated")
        except (requests.RequestException, ValueError) as exc:
            raise RepositoryError(f"Failed to list repositories: {exc}") from exc
        return [
            {
                "full_name": r.get("full_name"),
                "private": bool(r.get("private")),
                "default_branch": r.get("default_branch"),
                "updated_at": r.get("updated_at"),
            }
            for r in repos
        ]


class LocalRepositoryProvider(RepositoryProvider):
    """Serve a checkout on disk through the provider contract.

    ``owner`` and ``repo`` are accepted for interface parity and ignored.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def list_files(self, owner: str = "", repo: str = "") -> List[FileNode]:
        if not self.root.is_dir():
            raise RepositoryError(f"Not a directory: {self.root}")

        nodes = []
        for path in sorted(self.root.rglob("*")):
            rel = path.relative_to(self.root).as_posix()
            if is_excluded(rel):
                continue
            if path.is_dir():
                nodes.append(FileNode(path=rel, type="dir"))
            elif path.is_file():
                nodes.append(FileNode(path=rel, type="file", size=path.stat().st_size))
        return nodes

    def read_files(
        self,
        owner: str,
        repo: str,
        paths: Iterable[str],
        max_size_bytes: int = DEFAULT_MAX_FILE_SIZE_KB * 1024,
    ) -> Dict[str, str]:
        contents: Dict[str, str] = {}
        for rel in list(paths)[: self.max_fetch_files]:
            path = (self.root / rel).resolve()
            if self.root not in path.parents or not path.is_file():
                continue
            try:
                if path.stat().st_size > max_size_bytes:
                    logger.info("Skipping large file: %s", rel)
                    continue
                contents[rel] = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Failed to read %s: %s", rel, exc)
        return contents
