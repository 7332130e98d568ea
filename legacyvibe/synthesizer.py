"""Blueprint synthesis: per-chunk analysis followed by one merge call.

The LLM calls are injected as plain callables so the control flow can be
driven by fakes:

- ``chunk_analysis_fn(chunk, manifests_text, contents) -> {nodes, edges, insights}``
- ``synthesis_fn(raw, summary) -> {nodes, edges}``
- ``content_fetcher(paths, max_size_bytes) -> {path: text}``
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .chunker import select_key_files, truncate_content
from .config import AnalysisSettings
from .models import Blueprint, BlueprintValidationError, RepositoryChunk

logger = logging.getLogger(__name__)

ChunkAnalysisFn = Callable[[RepositoryChunk, str, Dict[str, str]], Dict[str, Any]]
SynthesisFn = Callable[[Dict[str, Any], str], Dict[str, Any]]
ContentFetcher = Callable[[List[str], int], Dict[str, str]]
ProgressCallback = Callable[[str, str], None]


class SynthesisError(RuntimeError):
    """Raised when no blueprint can be produced."""


@dataclass
class ChunkResult:
    chunk: RepositoryChunk
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _validate_partial(partial: Any) -> Dict[str, Any]:
    if not isinstance(partial, dict):
        raise BlueprintValidationError("Chunk analysis did not return an object")
    if not isinstance(partial.get("nodes"), list):
        raise BlueprintValidationError("Chunk analysis is missing a 'nodes' list")
    if not isinstance(partial.get("edges", []), list):
        raise BlueprintValidationError("Chunk analysis has a non-list 'edges'")
    for key in ("nodes", "edges"):
        if not all(isinstance(item, dict) for item in partial.get(key, [])):
            raise BlueprintValidationError(f"Chunk analysis has a non-object entry in '{key}'")
    return partial


def repair_blueprint(payload: Dict[str, Any]) -> Blueprint:
    """Turn a merged ``{nodes, edges}`` payload into a consistent Blueprint.

    - duplicate node ids collapse to the first occurrence
    - an edge endpoint that is not a node id is re-pointed to the node whose
      id or label matches it case-insensitively, otherwise the edge is dropped
    - duplicate ``(source, target, label)`` edges are removed

    Raises:
        BlueprintValidationError: if ``nodes``/``edges`` are not lists or a
            node is malformed.
    """
    if not isinstance(payload, dict):
        raise BlueprintValidationError("Synthesis result must be an object")
    raw_nodes, raw_edges = payload.get("nodes"), payload.get("edges")
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise BlueprintValidationError("Invalid blueprint structure: 'nodes' and 'edges' must be lists")

    unique_nodes: List[Dict[str, Any]] = []
    seen_ids = set()
    for raw in raw_nodes:
        node_id = raw.get("id") if isinstance(raw, dict) else None
        # Ids are compared as they will be stored.
        node_id = str(node_id) if node_id else node_id
        if node_id in seen_ids:
            logger.debug("Dropping duplicate node id %s", node_id)
            continue
        seen_ids.add(node_id)
        unique_nodes.append(raw)

    blueprint = Blueprint.from_dict({"nodes": unique_nodes, "edges": []})

    ids = {n.id for n in blueprint.nodes}
    aliases: Dict[str, str] = {}
    for node in blueprint.nodes:
        aliases.setdefault(node.label.strip().lower(), node.id)
    for node in blueprint.nodes:
        aliases.setdefault(node.id.strip().lower(), node.id)

    def resolve(endpoint: Any) -> Optional[str]:
        if not endpoint:
            return None
        endpoint = str(endpoint)
        if endpoint in ids:
            return endpoint
        return aliases.get(endpoint.strip().lower())

    kept = []
    seen_edges = set()
    for raw in raw_edges:
        if not isinstance(raw, dict):
            continue
        source, target = resolve(raw.get("source")), resolve(raw.get("target"))
        if source is None or target is None:
            logger.debug("Dropping dangling edge %s -> %s", raw.get("source"), raw.get("target"))
            continue
        key = (source, target, str(raw.get("label") or ""))
        if key in seen_edges:
            continue
        seen_edges.add(key)
        kept.append({**raw, "source": source, "target": target})

    return Blueprint.from_dict({"nodes": [n.to_dict() for n in blueprint.nodes], "edges": kept})


def build_summary(results: Sequence[ChunkResult]) -> str:
    """Plain-text digest of the surviving chunk analyses for the merge prompt."""
    lines = [f"Analyzed {len(results)} repository sections."]
    for result in results:
        labels = ", ".join(str(n.get("label") or n.get("id")) for n in result.nodes) or "none"
        lines.append(f"\n## {result.chunk.name} ({len(result.chunk.files)} files)")
        lines.append(f"Features: {labels}")
        for insight in result.insights:
            lines.append(f"- {insight}")
    return "\n".join(lines)


class BlueprintSynthesizer:
    """Run chunk analysis and merge the partial graphs into one blueprint."""

    def __init__(
        self,
        chunk_analysis_fn: ChunkAnalysisFn,
        synthesis_fn: SynthesisFn,
        content_fetcher: Optional[ContentFetcher] = None,
        settings: Optional[AnalysisSettings] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.chunk_analysis_fn = chunk_analysis_fn
        self.synthesis_fn = synthesis_fn
        self.content_fetcher = content_fetcher
        self.settings = settings or AnalysisSettings()
        self.progress = progress

    def _notify(self, step: str, message: str) -> None:
        if self.progress is not None:
            self.progress(step, message)

    def _fetch_contents(self, chunk: RepositoryChunk) -> Dict[str, str]:
        if self.content_fetcher is None:
            return {}
        paths = select_key_files(chunk, self.settings.max_key_files)[: self.settings.max_fetch_files]
        if not paths:
            return {}
        try:
            contents = self.content_fetcher(paths, self.settings.max_file_size_bytes)
        except Exception as exc:
            logger.warning("Could not fetch key files for %s: %s", chunk.id, exc)
            return {}
        budget = self.settings.content_char_budget
        return {path: truncate_content(text, budget) for path, text in contents.items()}

    def analyze_chunk(self, index: int, chunk: RepositoryChunk, manifests_text: str) -> ChunkResult:
        """Analyze one chunk; failures are captured on the result, never raised."""
        step = f"chunk-{index + 1}"
        self._notify(step, f"Analyzing {chunk.name} ({len(chunk.files)} files)")
        try:
            contents = self._fetch_contents(chunk)
            partial = _validate_partial(self.chunk_analysis_fn(chunk, manifests_text, contents))
        except Exception as exc:
            logger.warning("Chunk %s failed: %s", chunk.id, exc)
            self._notify(step, f"Skipped {chunk.name}: {exc}")
            return ChunkResult(chunk=chunk, error=str(exc))

        insights = partial.get("insights") or []
        if isinstance(insights, str):
            insights = [insights]
        return ChunkResult(
            chunk=chunk,
            nodes=list(partial["nodes"]),
            edges=list(partial.get("edges") or []),
            insights=[str(i) for i in insights],
        )

    def analyze_chunks(self, chunks: Sequence[RepositoryChunk], manifests_text: str) -> List[ChunkResult]:
        workers = max(1, self.settings.max_workers)
        if workers == 1 or len(chunks) <= 1:
            return [self.analyze_chunk(i, c, manifests_text) for i, c in enumerate(chunks)]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.analyze_chunk, i, c, manifests_text) for i, c in enumerate(chunks)]
            return [f.result() for f in futures]

    def synthesize(self, chunks: Sequence[RepositoryChunk], manifests_text: str = "") -> Blueprint:
        """Produce a repaired Blueprint from ``chunks``.

        Raises:
            SynthesisError: every chunk failed, or the merge call failed.
            BlueprintValidationError: the merge call returned a malformed shape.
        """
        if not chunks:
            return Blueprint()

        results = self.analyze_chunks(chunks, manifests_text)
        survivors = [r for r in results if r.ok]
        if not survivors:
            raise SynthesisError(f"All {len(chunks)} chunk analyses failed")

        raw = {
            "nodes": [n for r in survivors for n in r.nodes],
            "edges": [e for r in survivors for e in r.edges],
        }
        summary = build_summary(survivors)

        self._notify("synthesize", f"Merging {len(raw['nodes'])} candidate features")
        try:
            merged = self.synthesis_fn(raw, summary)
        except BlueprintValidationError:
            raise
        except Exception as exc:
            raise SynthesisError(f"Blueprint synthesis failed: {exc}") from exc

        self._notify("validate", "Validating blueprint structure")
        return repair_blueprint(merged)


def synthesize(
    chunks: Sequence[RepositoryChunk],
    manifests_text: str,
    chunk_analysis_fn: ChunkAnalysisFn,
    synthesis_fn: SynthesisFn,
    content_fetcher: Optional[ContentFetcher] = None,
    settings: Optional[AnalysisSettings] = None,
    progress: Optional[ProgressCallback] = None,
) -> Blueprint:
    return BlueprintSynthesizer(
        chunk_analysis_fn,
        synthesis_fn,
        content_fetcher=content_fetcher,
        settings=settings,
        progress=progress,
    ).synthesize(chunks, manifests_text)
