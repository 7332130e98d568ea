"""Architectural drift between two blueprint snapshots."""

from __future__ import annotations

from typing import Optional, Set, Tuple

from .models import Blueprint, DriftReport, ModifiedNode, RiskChange


def _edge_keys(blueprint: Blueprint) -> Set[Tuple[str, str]]:
    return {(e.source, e.target) for e in blueprint.edges}


def detect_drift(previous: Optional[Blueprint], current: Blueprint) -> DriftReport:
    """Compare ``previous`` with ``current``.

    Nodes are matched by id. A node counts as modified when its risk or its
    file set (ignoring order) changed. Edges are matched by
    ``(source, target)`` only; label and type changes are not drift.
    Output lists follow the order of the blueprint they come from.
    """
    previous = previous or Blueprint()
    old_nodes = previous.node_by_id()
    new_nodes = current.node_by_id()

    report = DriftReport()
    for node in current.nodes:
        if node.id not in old_nodes:
            report.added_nodes.append(node)
    for node in previous.nodes:
        if node.id not in new_nodes:
            report.removed_nodes.append(node)

    for node in current.nodes:
        old = old_nodes.get(node.id)
        if old is None:
            continue
        risk_changed = old.risk != node.risk
        files_changed = sorted(set(old.files)) != sorted(set(node.files))
        if risk_changed or files_changed:
            report.modified_nodes.append(ModifiedNode(old=old, new=node))
        if risk_changed:
            report.risk_changes.append(RiskChange(node=node.label, old_risk=old.risk, new_risk=node.risk))

    old_edges = _edge_keys(previous)
    new_edges = _edge_keys(current)
    seen: Set[Tuple[str, str]] = set()
    for edge in current.edges:
        key = (edge.source, edge.target)
        if key not in old_edges and key not in seen:
            seen.add(key)
            report.added_edges.append(edge)
    seen = set()
    for edge in previous.edges:
        key = (edge.source, edge.target)
        if key not in new_edges and key not in seen:
            seen.add(key)
            report.removed_edges.append(edge)

    return report
