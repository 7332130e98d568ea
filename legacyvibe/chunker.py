"""Repository chunking: split a file listing into LLM-sized logical sections.

The chunker is a pure function of the file tree. It keeps only files that
carry business logic, groups them by top-level directory, and splits any
group that exceeds the token budget once by its second path segment.
"""

from __future__ import annotations

import json
import math
import posixpath
import re
from typing import Dict, Iterable, List, Sequence

from .config import DEFAULT_MAX_KEY_FILES, DEFAULT_MAX_TOKENS_PER_CHUNK
from .models import FileNode, Manifest, RepositoryChunk

ROOT_CHUNK_ID = "root"
AVG_FILE_SIZE = 15_000
MAX_TREE_FILES = 500
MAX_FILES_PER_DIR = 20
MAX_MANIFEST_CHARS = 5_000

IMPORTANT_PATTERNS = [
    re.compile(r"\.(tsx?|jsx?|py|java|go|rs|rb|php|cs|swift|kt)$"),
    re.compile(r"^(next|vite|webpack|rollup|babel|tsconfig|jest|vitest|playwright)\.config\."),
    re.compile(r"^(index|main|app|server|client)\.(tsx?|jsx?|py)$"),
    re.compile(r"/(api|routes|controllers|handlers)/"),
    re.compile(r"/(components|ui|views|pages|screens)/"),
    re.compile(r"/(models|schema|entities|types)/"),
    re.compile(r"/(services|utils|lib|helpers)/"),
]

EXCLUDE_PATTERNS = [
    re.compile(r"\.(test|spec)\.(tsx?|jsx?|py)$"),
    re.compile(r"__tests__/"),
    re.compile(r"\.test/"),
    re.compile(r"\.(css|scss|sass|less|styl)$"),
    re.compile(r"\.(png|jpg|jpeg|gif|svg|ico|webp|mp4|mp3)$"),
    re.compile(r"\.(md|txt)$"),
    re.compile(r"(package-lock|yarn\.lock|poetry\.lock|Gemfile\.lock)"),
    re.compile(r"/(dist|build|out|target|bin)/"),
]

KEY_FILE_NAME = re.compile(r"(index|main|app|server|route|service|model|controller|handler)", re.IGNORECASE)
KEY_FILE_EXT = re.compile(r"\.(tsx?|jsx?|py|java|go|rs|rb|php|cs|swift|kt)$")

CHUNK_NAMES = {
    "api": "API Layer",
    "app": "Application Core",
    "src": "Source Code",
    "lib": "Libraries",
    "components": "UI Components",
    "pages": "Pages & Routes",
    "services": "Business Services",
    "models": "Data Models",
    "utils": "Utilities",
    "helpers": "Helper Functions",
    "middleware": "Middleware",
    "hooks": "React Hooks",
    "context": "Context Providers",
    "store": "State Management",
    "config": "Configuration",
    "types": "Type Definitions",
    "interfaces": "Interfaces",
    "controllers": "Controllers",
    "routes": "Route Handlers",
    "views": "Views",
    "templates": "Templates",
    "auth": "Authentication",
    "database": "Database",
    "db": "Database",
}

CHUNK_DESCRIPTIONS = {
    "api": "API endpoints and route handlers",
    "app": "Main application logic and structure",
    "src": "Core source code and business logic",
    "lib": "Shared libraries and utilities",
    "components": "Reusable UI components",
    "pages": "Page components and routing",
    "services": "Business logic and external service integrations",
    "models": "Data models and schemas",
    "utils": "Utility functions and helpers",
    "middleware": "Request/response middleware",
    "hooks": "Custom React hooks",
    "context": "React context and global state",
    "store": "State management (Redux/Zustand/etc)",
    "config": "Configuration files and constants",
    "auth": "Authentication and authorization logic",
    "database": "Database schemas and migrations",
}


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def is_important_file(node: FileNode) -> bool:
    """Return True when ``node`` is a file worth sending to the model."""
    if not node.is_file:
        return False
    if any(p.search(node.path) for p in EXCLUDE_PATTERNS):
        return False
    return any(p.search(node.path) for p in IMPORTANT_PATTERNS)


def filter_important_files(file_tree: Iterable[FileNode]) -> List[FileNode]:
    return [node for node in file_tree if is_important_file(node)]


def estimate_file_tokens(node: FileNode) -> int:
    """Roughly one token per four bytes; unknown sizes count as 15KB."""
    size = node.size or AVG_FILE_SIZE
    return math.ceil(size / 4)


def _estimate(files: Sequence[FileNode]) -> int:
    return sum(estimate_file_tokens(f) for f in files)


def chunk_name(directory: str) -> str:
    return CHUNK_NAMES.get(directory.lower(), _capitalize(directory))


def chunk_description(directory: str, files: Sequence[FileNode]) -> str:
    return CHUNK_DESCRIPTIONS.get(directory.lower(), f"{len(files)} files in {directory}")


def sub_chunk_name(sub_dir: str) -> str:
    return _capitalize(sub_dir.split("/")[-1])


def create_repository_chunks(
    file_tree: Iterable[FileNode],
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
) -> List[RepositoryChunk]:
    """Divide a repository into logical chunks.

    Args:
        file_tree: Flat listing of files and directories.
        max_tokens_per_chunk: Token budget for one top-level directory
            before it is split by its second path segment.

    Returns:
        Root chunk first (if any root-level files survive filtering), then
        one chunk per top-level directory in lexicographic order. Oversized
        directories yield one chunk per sub-directory, also sorted.
    """
    important = filter_important_files(file_tree)

    root_files: List[FileNode] = []
    groups: Dict[str, List[FileNode]] = {}
    for node in important:
        if "/" not in node.path:
            root_files.append(node)
            continue
        top = node.path.split("/", 1)[0]
        groups.setdefault(top, []).append(node)

    chunks: List[RepositoryChunk] = []
    if root_files:
        chunks.append(
            RepositoryChunk(
                id=ROOT_CHUNK_ID,
                name="Root Configuration",
                description="Root-level configuration and entry files",
                files=root_files,
                estimated_tokens=_estimate(root_files),
            )
        )

    for directory in sorted(groups):
        files = groups[directory]
        total = _estimate(files)
        name = chunk_name(directory)
        description = chunk_description(directory, files)

        if total <= max_tokens_per_chunk:
            # A directory named like the root chunk must not reuse its id.
            chunk_id = f"{directory}/" if directory == ROOT_CHUNK_ID else directory
            chunks.append(RepositoryChunk(chunk_id, name, description, files, total))
            continue

        # One level of splitting only; a sub-group may still exceed the budget.
        sub_groups: Dict[str, List[FileNode]] = {}
        for node in files:
            parts = node.path.split("/")
            key = f"{directory}/root" if len(parts) <= 2 else "/".join(parts[:2])
            sub_groups.setdefault(key, []).append(node)

        for key in sorted(sub_groups):
            sub_files = sub_groups[key]
            label = sub_chunk_name(key)
            chunks.append(
                RepositoryChunk(
                    id=key,
                    name=f"{name} / {label}",
                    description=f"{description} - {label} module",
                    files=sub_files,
                    estimated_tokens=_estimate(sub_files),
                )
            )

    return chunks


# Alias matching the pipeline's vocabulary.
chunk = create_repository_chunks


def select_key_files(chunk: RepositoryChunk, limit: int = DEFAULT_MAX_KEY_FILES) -> List[str]:
    """Pick the files whose names suggest entry points or core services."""
    picked = []
    for node in chunk.files:
        basename = posixpath.basename(node.path)
        if KEY_FILE_NAME.search(basename) and KEY_FILE_EXT.search(basename):
            picked.append(node.path)
            if len(picked) >= limit:
                break
    return picked


def truncate_content(text: str, budget: int) -> str:
    if len(text) <= budget:
        return text
    return text[:budget] + "\n... (truncated)"


# ---------------------------------------------------------------------------
# Prompt formatting
# ---------------------------------------------------------------------------

def format_chunk_for_ai(chunk: RepositoryChunk) -> str:
    lines = [
        f"CHUNK: {chunk.name}",
        f"DESCRIPTION: {chunk.description}",
        f"FILES ({len(chunk.files)} total):",
        "",
    ]
    grouped: Dict[str, List[str]] = {}
    for node in chunk.files:
        directory = node.path.rsplit("/", 1)[0] if "/" in node.path else "."
        grouped.setdefault(directory, []).append(node.path)

    for directory in sorted(grouped):
        lines.append(f"{directory}/")
        lines.extend(f"  {path}" for path in sorted(grouped[directory]))
        lines.append("")
    return "\n".join(lines) + "\n"


def format_file_tree_for_ai(file_tree: Iterable[FileNode]) -> str:
    """Condensed tree of important files grouped by top-level directory."""
    important = filter_important_files(file_tree)
    limited = important[:MAX_TREE_FILES]

    grouped: Dict[str, List[str]] = {}
    for node in limited:
        top = node.path.split("/", 1)[0] if "/" in node.path else "."
        grouped.setdefault(top, []).append(node.path)

    out = f"FILE TREE ({len(limited)} key files shown):\n"
    for directory in sorted(grouped):
        files = sorted(grouped[directory])
        out += f"\n{directory}/ ({len(files)} files)\n"
        for path in files[:MAX_FILES_PER_DIR]:
            out += f"  {path}\n"
        if len(files) > MAX_FILES_PER_DIR:
            out += f"  ... and {len(files) - MAX_FILES_PER_DIR} more files\n"

    if len(important) > MAX_TREE_FILES:
        out += f"\n({len(important) - MAX_TREE_FILES} additional files not shown)\n"
    return out


def _condense_package_json(content: str) -> str:
    parsed = json.loads(content)
    condensed = {
        "name": parsed.get("name"),
        "version": parsed.get("version"),
        "dependencies": parsed.get("dependencies") or {},
        "devDependencies": list(parsed.get("devDependencies") or {})[:20],
        "scripts": list(parsed.get("scripts") or {})[:10],
    }
    return json.dumps(condensed, indent=2)


def format_manifests_for_ai(manifests: Iterable[Manifest]) -> str:
    out = "\nMANIFEST FILES:\n"
    for manifest in manifests:
        out += f"\n=== {manifest.path} ===\n"
        content = manifest.content
        if len(content) <= MAX_MANIFEST_CHARS:
            out += content
        elif manifest.path == "package.json":
            try:
                out += _condense_package_json(content)
            except (ValueError, AttributeError):
                out += content[:MAX_MANIFEST_CHARS] + "\n... (truncated)"
        else:
            out += content[:MAX_MANIFEST_CHARS] + "\n... (truncated)"
        out += "\n"
    return out
