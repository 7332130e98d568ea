"""Technical-debt heatmap: per-feature risk trends across snapshots."""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from .models import (
    DebtHeatmap,
    FeatureNode,
    HeatmapSummary,
    HistoricalSnapshot,
    RiskSnapshot,
    RiskTrend,
    Snapshot,
)

RISK_POINTS = {"High": 10, "Med": 5, "Low": 1}
RISK_VALUE = {"High": 3, "Med": 2, "Low": 1}
TREND_ORDER = {"increasing": 0, "stable": 1, "decreasing": 2, "new": 3}


def snapshot_risk_score(nodes: Sequence[FeatureNode]) -> int:
    """Weighted risk of a snapshot on a 0..100 scale (0 when empty)."""
    if not nodes:
        return 0
    points = sum(RISK_POINTS.get(n.risk, 0) for n in nodes)
    return round(100 * points / (len(nodes) * 10))


def build_snapshot(snapshot: Snapshot) -> HistoricalSnapshot:
    nodes = list(snapshot.blueprint.nodes)
    return HistoricalSnapshot(
        analyzed_at=snapshot.analyzed_at,
        nodes=nodes,
        total_nodes=len(nodes),
        high_risk_count=sum(1 for n in nodes if n.risk == "High"),
        med_risk_count=sum(1 for n in nodes if n.risk == "Med"),
        low_risk_count=sum(1 for n in nodes if n.risk == "Low"),
        risk_score=snapshot_risk_score(nodes),
    )


def calculate_risk_trends(snapshots: Sequence[HistoricalSnapshot]) -> List[RiskTrend]:
    """Trend per feature of the latest snapshot.

    ``snapshots`` must be ordered most recent first. Features that only
    exist in older snapshots are not reported.
    """
    if not snapshots:
        return []

    latest = snapshots[0]
    trends: Dict[str, RiskTrend] = {}
    for node in latest.nodes:
        if node.id in trends:
            continue
        trends[node.id] = RiskTrend(
            node_id=node.id,
            node_label=node.label,
            current_risk=node.risk,
            previous_risk=None,
            trend="new",
            change_date=None,
            snapshots=[RiskSnapshot(date=latest.analyzed_at, risk=node.risk)],
        )

    for snapshot in snapshots[1:]:
        seen = set()
        for node in snapshot.nodes:
            trend = trends.get(node.id)
            if trend is None or node.id in seen:
                continue
            seen.add(node.id)
            trend.snapshots.append(RiskSnapshot(date=snapshot.analyzed_at, risk=node.risk))

    for trend in trends.values():
        if len(trend.snapshots) == 1:
            continue
        current, previous = trend.snapshots[0], trend.snapshots[1]
        trend.previous_risk = previous.risk
        trend.change_date = current.date
        delta = RISK_VALUE.get(current.risk, 0) - RISK_VALUE.get(previous.risk, 0)
        if delta > 0:
            trend.trend = "increasing"
        elif delta < 0:
            trend.trend = "decreasing"
        else:
            trend.trend = "stable"

    # sorted() is stable, so ties keep latest-snapshot order.
    return sorted(trends.values(), key=lambda t: TREND_ORDER[t.trend])


def calculate_summary(
    snapshots: Sequence[HistoricalSnapshot],
    trends: Sequence[RiskTrend],
) -> HeatmapSummary:
    if not snapshots:
        return HeatmapSummary()

    delta = snapshots[0].risk_score - snapshots[-1].risk_score
    if delta < -5:
        overall = "improving"
    elif delta > 5:
        overall = "degrading"
    else:
        overall = "stable"

    increasing = [t for t in trends if t.trend == "increasing"]
    decreasing = [t for t in trends if t.trend == "decreasing"]
    return HeatmapSummary(
        total_scans=len(snapshots),
        overall_trend=overall,
        risk_score_delta=delta,
        high_risk_added=sum(1 for t in increasing if t.current_risk == "High"),
        high_risk_removed=sum(
            1 for t in decreasing if t.previous_risk == "High" and t.current_risk != "High"
        ),
        most_improved_nodes=[t.node_label for t in decreasing if t.previous_risk == "High"][:3],
        most_degraded_nodes=[t.node_label for t in increasing if t.current_risk == "High"][:3],
    )


def aggregate_trends(snapshots: Sequence[Snapshot]) -> Tuple[List[RiskTrend], HeatmapSummary]:
    """Trends and summary for snapshots ordered most recent first."""
    history = [build_snapshot(s) for s in snapshots]
    trends = calculate_risk_trends(history)
    return trends, calculate_summary(history, trends)


def build_debt_heatmap(snapshots: Sequence[Snapshot]) -> DebtHeatmap:
    history = [build_snapshot(s) for s in snapshots]
    trends = calculate_risk_trends(history)
    return DebtHeatmap(
        snapshots=history,
        trends=trends,
        summary=calculate_summary(history, trends),
        time_range={
            "from": history[-1].analyzed_at if history else None,
            "to": history[0].analyzed_at if history else None,
        },
    )
