"""Blast-radius analysis over a feature blueprint."""

from __future__ import annotations

import posixpath
from typing import Dict, Iterable, List, Set

from .models import AffectedNode, Blueprint, FeatureNode, ImpactReport

DIRECT_WEIGHTS = {"High": 30, "Med": 20, "Low": 10}
INDIRECT_WEIGHTS = {"High": 15, "Med": 10, "Low": 5}
DOWNSTREAM_WEIGHTS = {"High": 5, "Med": 3, "Low": 1}

MATCH_MODES = ("substring", "exact")

AUTH_KEYWORDS = ("auth", "user", "gateway")
PAYMENT_KEYWORDS = ("payment", "money", "billing")


def _normalize_path(path: str) -> str:
    path = path.strip().replace("\\", "/").lower().lstrip("/")
    return posixpath.normpath(path) if path else path


def file_matches(target_file: str, file_entry: str, match_mode: str = "substring") -> bool:
    """Decide whether a node's file entry refers to ``target_file``.

    ``substring`` (default) is a case-insensitive containment check in both
    directions. ``exact`` compares normalised paths.
    """
    if match_mode == "exact":
        return _normalize_path(target_file) == _normalize_path(file_entry)
    if match_mode != "substring":
        raise ValueError(f"Unknown match mode: {match_mode!r}")
    target, entry = target_file.lower(), file_entry.lower()
    if not target or not entry:
        return False
    return target in entry or entry in target


def _affected(node: FeatureNode, level: str, reason: str) -> AffectedNode:
    return AffectedNode(
        id=node.id,
        label=node.label,
        description=node.description,
        risk=node.risk,
        impact_level=level,
        reason=reason,
    )


def calculate_risk_score(
    direct: Iterable[AffectedNode],
    indirect: Iterable[AffectedNode],
    downstream: Iterable[AffectedNode],
) -> int:
    score = sum(DIRECT_WEIGHTS.get(n.risk, 10) for n in direct)
    score += sum(INDIRECT_WEIGHTS.get(n.risk, 5) for n in indirect)
    score += sum(DOWNSTREAM_WEIGHTS.get(n.risk, 1) for n in downstream)
    return min(score, 100)


def get_risk_level(score: int) -> str:
    if score >= 70:
        return "Critical"
    if score >= 50:
        return "High"
    if score >= 25:
        return "Medium"
    return "Low"


def _has_keyword(nodes: Iterable[AffectedNode], keywords: Iterable[str]) -> bool:
    keywords = tuple(keywords)
    return any(any(k in n.label.lower() for k in keywords) for n in nodes)


def generate_recommendations(
    direct: List[AffectedNode],
    indirect: List[AffectedNode],
    downstream: List[AffectedNode],
    risk_score: int,
) -> List[str]:
    if not direct:
        return ["✅ This file is not tracked in any critical feature. Changes should be low risk."]

    recommendations: List[str] = []
    if risk_score >= 70:
        recommendations.append("🚨 CRITICAL: This change affects core features. Extensive testing required.")
        recommendations.append("Consider creating a feature flag to gradually roll out changes.")

    if any(n.risk == "High" for n in direct):
        recommendations.append(
            "⚠️ This file is part of HIGH RISK features. Review security and auth implications."
        )

    if len(indirect) > 3:
        recommendations.append(
            f"📊 {len(indirect)} features have indirect dependencies. Update integration tests."
        )

    if downstream:
        recommendations.append(
            f"🔗 {len(downstream)} downstream features may be affected. Monitor for unexpected behavior."
        )

    touched = direct + indirect
    if _has_keyword(touched, AUTH_KEYWORDS):
        recommendations.append(
            "🔒 Authentication/Authorization features affected. Verify permission checks."
        )
    if _has_keyword(touched, PAYMENT_KEYWORDS):
        recommendations.append(
            "💳 Payment features affected. Extra caution required for financial transactions."
        )

    recommendations.append(
        f"✓ Recommended: Run {len(direct) + len(indirect)} feature test suites before deploying."
    )
    return recommendations


def analyze_impact(
    target_file: str,
    blueprint: Blueprint,
    match_mode: str = "substring",
) -> ImpactReport:
    """Compute the features touched by a change to ``target_file``.

    Three tiers are produced: nodes that own the file (direct), their
    neighbours in either edge direction (indirect), and targets of edges
    leaving an indirect node (downstream). Tiers are disjoint and the walk
    stops at two hops.
    """
    nodes: Dict[str, FeatureNode] = blueprint.node_by_id()

    direct: List[AffectedNode] = []
    direct_ids: Set[str] = set()
    for node in blueprint.nodes:
        if node.id in direct_ids:
            continue
        if any(file_matches(target_file, f, match_mode) for f in node.files):
            direct_ids.add(node.id)
            direct.append(_affected(node, "direct", f"Contains the file: {target_file}"))

    indirect: List[AffectedNode] = []
    indirect_ids: Set[str] = set()
    affected_edges: List[str] = []
    for edge in blueprint.edges:
        touches_source = edge.source in direct_ids
        touches_target = edge.target in direct_ids
        if not (touches_source or touches_target):
            continue
        affected_edges.append(edge.key)
        for end, is_direct in ((edge.target, touches_source), (edge.source, touches_target)):
            if not is_direct or end in direct_ids or end in indirect_ids:
                continue
            neighbour = nodes.get(end)
            if neighbour is None:
                continue
            indirect_ids.add(end)
            indirect.append(_affected(neighbour, "indirect", f"Connected via: {edge.label}"))

    downstream: List[AffectedNode] = []
    downstream_ids: Set[str] = set()
    for edge in blueprint.edges:
        if edge.source not in indirect_ids:
            continue
        end = edge.target
        if end in direct_ids or end in indirect_ids or end in downstream_ids:
            continue
        neighbour = nodes.get(end)
        if neighbour is None:
            continue
        downstream_ids.add(end)
        downstream.append(_affected(neighbour, "downstream", "Downstream dependency"))

    score = calculate_risk_score(direct, indirect, downstream)
    return ImpactReport(
        target_file=target_file,
        direct_impact=direct,
        indirect_impact=indirect,
        downstream_impact=downstream,
        affected_edges=affected_edges,
        risk_score=score,
        risk_level=get_risk_level(score),
        recommendations=generate_recommendations(direct, indirect, downstream, score),
    )
