"""Core data models shared by chunking, synthesis, and graph analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

RISK_LEVELS = ("High", "Med", "Low")
VIBES = ("stable", "active", "fragile", "boilerplate")
EDGE_TYPES = ("data", "control", "config")

_RISK_ALIASES = {
    "high": "High",
    "med": "Med",
    "medium": "Med",
    "low": "Low",
}


class BlueprintValidationError(ValueError):
    """Raised when a blueprint payload does not have the expected shape."""


def normalize_risk(value: Any) -> str:
    """Map ``"medium"``/``"HIGH"``/... onto the canonical High/Med/Low."""
    risk = _RISK_ALIASES.get(str(value).strip().lower())
    if risk is None:
        raise BlueprintValidationError(f"Unknown risk level: {value!r}")
    return risk


@dataclass(frozen=True)
class FileNode:
    path: str
    type: str = "file"
    size: Optional[int] = None

    @property
    def is_file(self) -> bool:
        return self.type == "file"


@dataclass
class RepositoryChunk:
    id: str
    name: str
    description: str
    files: List[FileNode]
    estimated_tokens: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "files": [f.path for f in self.files],
            "estimatedTokens": self.estimated_tokens,
        }


@dataclass
class Manifest:
    path: str
    content: str


@dataclass
class FeatureNode:
    """A human-named business feature and the files that implement it."""

    id: str
    label: str
    description: str = ""
    files: List[str] = field(default_factory=list)
    risk: str = "Low"
    vibe: Optional[str] = None
    entry_points: List[str] = field(default_factory=list)
    conventions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FeatureNode":
        if not isinstance(payload, dict):
            raise BlueprintValidationError("Node must be an object")
        node_id = payload.get("id")
        if not node_id:
            raise BlueprintValidationError("Node is missing an id")
        files = payload.get("files") or []
        if not isinstance(files, list):
            raise BlueprintValidationError(f"Node {node_id!r} has a non-list 'files'")
        # Files are a set; keep first occurrence order.
        unique_files = list(dict.fromkeys(str(f) for f in files))
        vibe = payload.get("vibe")
        return cls(
            id=str(node_id),
            label=str(payload.get("label") or node_id),
            description=str(payload.get("description") or ""),
            files=unique_files,
            risk=normalize_risk(payload.get("risk", "Low")),
            vibe=vibe if vibe in VIBES else None,
            entry_points=[str(e) for e in payload.get("entryPoints") or []],
            conventions=[str(c) for c in payload.get("conventions") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "files": list(self.files),
            "risk": self.risk,
        }
        if self.vibe:
            out["vibe"] = self.vibe
        if self.entry_points:
            out["entryPoints"] = list(self.entry_points)
        if self.conventions:
            out["conventions"] = list(self.conventions)
        return out


@dataclass
class FeatureEdge:
    source: str
    target: str
    label: str = ""
    type: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.source}->{self.target}"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FeatureEdge":
        if not isinstance(payload, dict):
            raise BlueprintValidationError("Edge must be an object")
        source, target = payload.get("source"), payload.get("target")
        if not source or not target:
            raise BlueprintValidationError("Edge is missing source or target")
        edge_type = payload.get("type")
        return cls(
            source=str(source),
            target=str(target),
            label=str(payload.get("label") or ""),
            type=edge_type if edge_type in EDGE_TYPES else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"source": self.source, "target": self.target, "label": self.label}
        if self.type:
            out["type"] = self.type
        return out


@dataclass
class Blueprint:
    nodes: List[FeatureNode] = field(default_factory=list)
    edges: List[FeatureEdge] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Any) -> "Blueprint":
        """Parse a ``{nodes, edges}`` payload.

        Raises:
            BlueprintValidationError: if either list is missing or malformed.
        """
        if not isinstance(payload, dict):
            raise BlueprintValidationError("Blueprint must be an object")
        nodes, edges = payload.get("nodes"), payload.get("edges")
        if not isinstance(nodes, list) or not isinstance(edges, list):
            raise BlueprintValidationError("Invalid blueprint structure: 'nodes' and 'edges' must be lists")
        return cls(
            nodes=[FeatureNode.from_dict(n) for n in nodes],
            edges=[FeatureEdge.from_dict(e) for e in edges],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    def node_by_id(self) -> Dict[str, FeatureNode]:
        return {n.id: n for n in self.nodes}


@dataclass
class Snapshot:
    """A persisted blueprint and the time it was synthesized."""

    blueprint: Blueprint
    analyzed_at: str
    repo_full_name: str = ""
    id: Optional[int] = None


# ---------------------------------------------------------------------------
# Impact
# ---------------------------------------------------------------------------

@dataclass
class AffectedNode:
    id: str
    label: str
    description: str
    risk: str
    impact_level: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "risk": self.risk,
            "impactLevel": self.impact_level,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AffectedNode":
        return cls(
            id=payload["id"],
            label=payload.get("label", ""),
            description=payload.get("description", ""),
            risk=payload.get("risk", "Low"),
            impact_level=payload.get("impactLevel", "direct"),
            reason=payload.get("reason", ""),
        )


@dataclass
class ImpactReport:
    target_file: str
    direct_impact: List[AffectedNode] = field(default_factory=list)
    indirect_impact: List[AffectedNode] = field(default_factory=list)
    downstream_impact: List[AffectedNode] = field(default_factory=list)
    affected_edges: List[str] = field(default_factory=list)
    risk_score: int = 0
    risk_level: str = "Low"
    recommendations: List[str] = field(default_factory=list)

    @property
    def total_affected(self) -> int:
        return len(self.direct_impact) + len(self.indirect_impact) + len(self.downstream_impact)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetFile": self.target_file,
            "directImpact": [n.to_dict() for n in self.direct_impact],
            "indirectImpact": [n.to_dict() for n in self.indirect_impact],
            "downstreamImpact": [n.to_dict() for n in self.downstream_impact],
            "affectedEdges": list(self.affected_edges),
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level,
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ImpactReport":
        return cls(
            target_file=payload["targetFile"],
            direct_impact=[AffectedNode.from_dict(n) for n in payload.get("directImpact", [])],
            indirect_impact=[AffectedNode.from_dict(n) for n in payload.get("indirectImpact", [])],
            downstream_impact=[AffectedNode.from_dict(n) for n in payload.get("downstreamImpact", [])],
            affected_edges=list(payload.get("affectedEdges", [])),
            risk_score=int(payload.get("riskScore", 0)),
            risk_level=payload.get("riskLevel", "Low"),
            recommendations=list(payload.get("recommendations", [])),
        )


# ---------------------------------------------------------------------------
# Drift
# ---------------------------------------------------------------------------

@dataclass
class ModifiedNode:
    old: FeatureNode
    new: FeatureNode


@dataclass
class RiskChange:
    node: str
    old_risk: str
    new_risk: str


@dataclass
class DriftReport:
    added_nodes: List[FeatureNode] = field(default_factory=list)
    removed_nodes: List[FeatureNode] = field(default_factory=list)
    modified_nodes: List[ModifiedNode] = field(default_factory=list)
    added_edges: List[FeatureEdge] = field(default_factory=list)
    removed_edges: List[FeatureEdge] = field(default_factory=list)
    risk_changes: List[RiskChange] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.added_nodes
            or self.removed_nodes
            or self.modified_nodes
            or self.added_edges
            or self.removed_edges
            or self.risk_changes
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addedNodes": [n.to_dict() for n in self.added_nodes],
            "removedNodes": [n.to_dict() for n in self.removed_nodes],
            "modifiedNodes": [
                {"old": m.old.to_dict(), "new": m.new.to_dict()} for m in self.modified_nodes
            ],
            "addedEdges": [e.to_dict() for e in self.added_edges],
            "removedEdges": [e.to_dict() for e in self.removed_edges],
            "riskChanges": [
                {"node": r.node, "oldRisk": r.old_risk, "newRisk": r.new_risk}
                for r in self.risk_changes
            ],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DriftReport":
        return cls(
            added_nodes=[FeatureNode.from_dict(n) for n in payload.get("addedNodes", [])],
            removed_nodes=[FeatureNode.from_dict(n) for n in payload.get("removedNodes", [])],
            modified_nodes=[
                ModifiedNode(FeatureNode.from_dict(m["old"]), FeatureNode.from_dict(m["new"]))
                for m in payload.get("modifiedNodes", [])
            ],
            added_edges=[FeatureEdge.from_dict(e) for e in payload.get("addedEdges", [])],
            removed_edges=[FeatureEdge.from_dict(e) for e in payload.get("removedEdges", [])],
            risk_changes=[
                RiskChange(r["node"], r["oldRisk"], r["newRisk"])
                for r in payload.get("riskChanges", [])
            ],
        )


# ---------------------------------------------------------------------------
# Heatmap
# ---------------------------------------------------------------------------

@dataclass
class RiskSnapshot:
    date: str
    risk: str


@dataclass
class RiskTrend:
    node_id: str
    node_label: str
    current_risk: str
    previous_risk: Optional[str]
    trend: str
    change_date: Optional[str]
    snapshots: List[RiskSnapshot] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "nodeLabel": self.node_label,
            "currentRisk": self.current_risk,
            "previousRisk": self.previous_risk,
            "trend": self.trend,
            "changeDate": self.change_date,
            "snapshots": [{"date": s.date, "risk": s.risk} for s in self.snapshots],
        }


@dataclass
class HistoricalSnapshot:
    analyzed_at: str
    nodes: List[FeatureNode]
    total_nodes: int
    high_risk_count: int
    med_risk_count: int
    low_risk_count: int
    risk_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analyzedAt": self.analyzed_at,
            "totalNodes": self.total_nodes,
            "highRiskCount": self.high_risk_count,
            "medRiskCount": self.med_risk_count,
            "lowRiskCount": self.low_risk_count,
            "riskScore": self.risk_score,
        }


@dataclass
class HeatmapSummary:
    total_scans: int = 0
    overall_trend: str = "stable"
    risk_score_delta: int = 0
    high_risk_added: int = 0
    high_risk_removed: int = 0
    most_improved_nodes: List[str] = field(default_factory=list)
    most_degraded_nodes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalScans": self.total_scans,
            "overallTrend": self.overall_trend,
            "riskScoreDelta": self.risk_score_delta,
            "highRiskAdded": self.high_risk_added,
            "highRiskRemoved": self.high_risk_removed,
            "mostImprovedNodes": list(self.most_improved_nodes),
            "mostDegradedNodes": list(self.most_degraded_nodes),
        }


@dataclass
class DebtHeatmap:
    snapshots: List[HistoricalSnapshot]
    trends: List[RiskTrend]
    summary: HeatmapSummary
    time_range: Dict[str, Optional[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshots": [s.to_dict() for s in self.snapshots],
            "trends": [t.to_dict() for t in self.trends],
            "summary": self.summary.to_dict(),
            "timeRange": dict(self.time_range),
        }


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------

@dataclass
class LearningStep:
    id: str
    order: int
    title: str
    description: str
    type: str
    node_id: str
    node_name: str
    files: List[str] = field(default_factory=list)
    objectives: List[str] = field(default_factory=list)
    estimated_time: int = 15
    prerequisites: List[str] = field(default_factory=list)
    checkpoints: List[str] = field(default_factory=list)
    hints: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order": self.order,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "files": list(self.files),
            "objectives": list(self.objectives),
            "estimatedTime": self.estimated_time,
            "prerequisites": list(self.prerequisites),
            "checkpoints": list(self.checkpoints),
            "hints": list(self.hints),
        }


@dataclass
class OnboardingPath:
    overview: str
    estimated_total_time: int
    learning_path: List[LearningStep]
    key_takeaways: List[str] = field(default_factory=list)
    user_level: str = "intermediate"
    focus_area: Optional[str] = None

    @property
    def total_steps(self) -> int:
        return len(self.learning_path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overview": self.overview,
            "estimatedTotalTime": self.estimated_total_time,
            "totalSteps": self.total_steps,
            "learningPath": [s.to_dict() for s in self.learning_path],
            "keyTakeaways": list(self.key_takeaways),
            "userLevel": self.user_level,
            "focusArea": self.focus_area,
        }
