"""Tests for chunked blueprint synthesis."""

import threading
import time

import pytest

from legacyvibe.chunker import create_repository_chunks
from legacyvibe.config import AnalysisSettings
from legacyvibe.models import BlueprintValidationError, FileNode
from legacyvibe.synthesizer import (
    BlueprintSynthesizer,
    SynthesisError,
    build_summary,
    repair_blueprint,
    synthesize,
)


def _chunks():
    tree = [
        FileNode("app.py", size=400),
        FileNode("api/routes.py", size=400),
        FileNode("services/billing_service.py", size=400),
    ]
    return create_repository_chunks(tree)


def _partial_for(chunk):
    return {
        "nodes": [{"id": chunk.id, "label": chunk.name, "files": [f.path for f in chunk.files], "risk": "Low"}],
        "edges": [],
        "insights": [f"{chunk.id} looks fine"],
    }


def _echo_synthesis(raw, summary):
    return raw


class TestRepairBlueprint:
    """Test structural repair of merged payloads."""

    def test_duplicate_nodes_keep_first(self):
        bp = repair_blueprint({
            "nodes": [
                {"id": "a", "label": "First"},
                {"id": "a", "label": "Second"},
                {"id": "b", "label": "B"},
            ],
            "edges": [],
        })
        assert [(n.id, n.label) for n in bp.nodes] == [("a", "First"), ("b", "B")]

    def test_numeric_and_string_ids_are_duplicates(self):
        """An int id and its string form name the same node."""
        bp = repair_blueprint({
            "nodes": [
                {"id": 1, "label": "Numeric"},
                {"id": "1", "label": "Text"},
            ],
            "edges": [],
        })
        assert [(n.id, n.label) for n in bp.nodes] == [("1", "Numeric")]

    def test_dangling_edges_repointed_by_label(self, merged_payload):
        bp = repair_blueprint(merged_payload)

        assert [(e.source, e.target) for e in bp.edges] == [
            ("checkout-flow", "billing"),
            ("checkout-flow", "user-auth"),
        ]

    def test_every_edge_endpoint_exists(self, merged_payload):
        bp = repair_blueprint(merged_payload)
        ids = {n.id for n in bp.nodes}
        assert all(e.source in ids and e.target in ids for e in bp.edges)

    def test_duplicate_edges_removed(self):
        bp = repair_blueprint({
            "nodes": [{"id": "a", "label": "A"}, {"id": "b", "label": "B"}],
            "edges": [
                {"source": "a", "target": "b", "label": "calls"},
                {"source": "A", "target": "b", "label": "calls"},
                {"source": "a", "target": "b", "label": "notifies"},
            ],
        })
        assert [e.label for e in bp.edges] == ["calls", "notifies"]

    def test_risk_is_normalized(self):
        bp = repair_blueprint({"nodes": [{"id": "a", "label": "A", "risk": "medium"}], "edges": []})
        assert bp.nodes[0].risk == "Med"

    @pytest.mark.parametrize(
        "payload",
        [
            {"nodes": "a", "edges": []},
            {"nodes": [], "edges": None},
            {"edges": []},
            {"nodes": [{"id": "a", "risk": "catastrophic"}], "edges": []},
            ["nodes"],
        ],
    )
    def test_malformed_payloads(self, payload):
        with pytest.raises(BlueprintValidationError):
            repair_blueprint(payload)


class TestSynthesizer:
    """Test the chunk-then-merge pipeline."""

    def test_zero_chunks_makes_no_calls(self):
        calls = []
        bp = synthesize([], "", lambda *a: calls.append(a), lambda *a: calls.append(a))

        assert bp.nodes == [] and bp.edges == []
        assert calls == []

    def test_merges_surviving_chunks(self):
        seen = {}

        def synthesis(raw, summary):
            seen["raw"], seen["summary"] = raw, summary
            return raw

        bp = synthesize(_chunks(), "MANIFESTS", lambda c, m, contents: _partial_for(c), synthesis)

        assert [n.id for n in bp.nodes] == ["root", "api", "services"]
        assert seen["summary"].startswith("Analyzed 3 repository sections.")
        assert "- api looks fine" in seen["summary"]

    def test_failed_chunk_is_skipped(self):
        """One failing chunk does not abort the run."""
        def analysis(chunk, manifests, contents):
            if chunk.id == "api":
                raise RuntimeError("model timeout")
            return _partial_for(chunk)

        synthesizer = BlueprintSynthesizer(analysis, _echo_synthesis)
        results = synthesizer.analyze_chunks(_chunks(), "")
        bp = synthesizer.synthesize(_chunks(), "")

        assert [r.ok for r in results] == [True, False, True]
        assert results[1].error == "model timeout"
        assert [n.id for n in bp.nodes] == ["root", "services"]

    def test_malformed_partial_counts_as_failure(self):
        def analysis(chunk, manifests, contents):
            return {"nodes": "oops"} if chunk.id == "root" else _partial_for(chunk)

        bp = synthesize(_chunks(), "", analysis, _echo_synthesis)
        assert [n.id for n in bp.nodes] == ["api", "services"]

    def test_partial_with_non_object_nodes_is_skipped(self):
        """A node list holding bare strings drops only that chunk."""
        def analysis(chunk, manifests, contents):
            if chunk.id == "api":
                return {"nodes": ["Checkout Flow"], "edges": []}
            return _partial_for(chunk)

        bp = synthesize(_chunks(), "", analysis, _echo_synthesis)
        assert [n.id for n in bp.nodes] == ["root", "services"]

    def test_partial_with_non_object_edges_is_skipped(self):
        def analysis(chunk, manifests, contents):
            partial = _partial_for(chunk)
            if chunk.id == "services":
                partial["edges"] = ["api -> services"]
            return partial

        bp = synthesize(_chunks(), "", analysis, _echo_synthesis)
        assert [n.id for n in bp.nodes] == ["root", "api"]

    def test_all_chunks_failing_raises(self):
        def analysis(chunk, manifests, contents):
            raise ValueError("bad json")

        with pytest.raises(SynthesisError, match="All 3 chunk analyses failed"):
            synthesize(_chunks(), "", analysis, _echo_synthesis)

    def test_synthesis_failure_raises(self):
        def synthesis(raw, summary):
            raise ConnectionError("provider down")

        with pytest.raises(SynthesisError, match="provider down"):
            synthesize(_chunks(), "", lambda c, m, x: _partial_for(c), synthesis)

    def test_synthesis_shape_error_propagates(self):
        with pytest.raises(BlueprintValidationError):
            synthesize(_chunks(), "", lambda c, m, x: _partial_for(c), lambda raw, s: {"nodes": []})

    def test_progress_steps(self):
        events = []
        synthesize(
            _chunks(), "", lambda c, m, x: _partial_for(c), _echo_synthesis,
            progress=lambda step, message: events.append(step),
        )
        assert events == ["chunk-1", "chunk-2", "chunk-3", "synthesize", "validate"]

    def test_key_file_contents_are_truncated(self):
        received = {}

        def fetcher(paths, max_size_bytes):
            received["paths"] = list(paths)
            received["max"] = max_size_bytes
            return {p: "x" * 50 for p in paths}

        def analysis(chunk, manifests, contents):
            received.setdefault("contents", {}).update(contents)
            return _partial_for(chunk)

        settings = AnalysisSettings(content_char_budget=10, max_file_size_kb=1)
        synthesize(_chunks(), "", analysis, _echo_synthesis, content_fetcher=fetcher, settings=settings)

        assert received["max"] == 1024
        assert received["contents"]["app.py"] == "x" * 10 + "\n... (truncated)"
        assert received["paths"] == ["services/billing_service.py"]

    def test_fetch_failure_degrades_to_no_contents(self):
        seen = []

        def fetcher(paths, max_size_bytes):
            raise OSError("network")

        def analysis(chunk, manifests, contents):
            seen.append(contents)
            return _partial_for(chunk)

        synthesize(_chunks(), "", analysis, _echo_synthesis, content_fetcher=fetcher)
        assert seen == [{}, {}, {}]

    def test_parallel_analysis_keeps_chunk_order(self):
        """Results come back in chunk order regardless of completion order."""
        active = []
        peak = []
        lock = threading.Lock()

        def analysis(chunk, manifests, contents):
            with lock:
                active.append(chunk.id)
                peak.append(len(active))
            time.sleep(0.05 if chunk.id == "root" else 0.01)
            with lock:
                active.remove(chunk.id)
            return _partial_for(chunk)

        synthesizer = BlueprintSynthesizer(analysis, _echo_synthesis, settings=AnalysisSettings(max_workers=3))
        results = synthesizer.analyze_chunks(_chunks(), "")

        assert [r.chunk.id for r in results] == ["root", "api", "services"]
        assert max(peak) > 1


class TestBuildSummary:
    def test_lists_features_per_chunk(self):
        synthesizer = BlueprintSynthesizer(lambda c, m, x: _partial_for(c), _echo_synthesis)
        results = synthesizer.analyze_chunks(_chunks()[:1], "")
        summary = build_summary(results)

        assert "## Root Configuration (1 files)" in summary
        assert "Features: Root Configuration" in summary
