"""Validation and repair of LLM-generated onboarding learning paths."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .models import Blueprint, FeatureNode, LearningStep, OnboardingPath

logger = logging.getLogger(__name__)

USER_LEVELS = ("beginner", "intermediate", "advanced")
STEP_TYPES = ("read", "explore", "modify", "test")
DEFAULT_STEP_MINUTES = 15
DEFAULT_OVERVIEW = "A comprehensive learning path through this codebase."
DEFAULT_TAKEAWAYS = ["Understanding the codebase structure"]


class LearningPathError(ValueError):
    """Raised when a learning path cannot be repaired into a usable shape."""


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _closest_node(blueprint: Blueprint, node_name: str) -> FeatureNode:
    name = (node_name or "").lower()
    if name:
        for node in blueprint.nodes:
            label = node.label.lower()
            if name in label or label in name:
                return node
    return blueprint.nodes[0]


def validate_learning_path(
    payload: Dict[str, Any],
    blueprint: Blueprint,
    user_level: str = "intermediate",
    focus_area: Optional[str] = None,
) -> OnboardingPath:
    """Check and repair a raw learning path against ``blueprint``.

    Steps pointing at unknown node ids are re-pointed to the node whose
    label contains (or is contained in) the step's ``nodeName``, falling
    back to the first node. Missing list fields become empty, missing
    times default to 15 minutes, and missing orders follow position.

    Raises:
        LearningPathError: no steps, or a step lacks ``id``/``title``/``nodeId``.
    """
    if not isinstance(payload, dict):
        raise LearningPathError("Learning path must be an object")
    raw_steps = payload.get("learningPath")
    if not isinstance(raw_steps, list):
        raise LearningPathError("Response is missing the learningPath array")
    if not raw_steps:
        raise LearningPathError("Model returned an empty learning path")
    if not blueprint.nodes:
        raise LearningPathError("Blueprint has no features to build a path from")

    nodes = blueprint.node_by_id()
    steps: List[LearningStep] = []
    for position, raw in enumerate(raw_steps, start=1):
        if not isinstance(raw, dict) or not raw.get("id") or not raw.get("title") or not raw.get("nodeId"):
            raise LearningPathError(
                f"Learning step {position} is missing required fields (id, title, or nodeId)"
            )

        node_id = str(raw["nodeId"])
        node_name = str(raw.get("nodeName") or "")
        if node_id not in nodes:
            replacement = _closest_node(blueprint, node_name)
            logger.warning("Step %s references unknown node %s, using %s", raw["id"], node_id, replacement.id)
            node_id, node_name = replacement.id, replacement.label
        elif not node_name:
            node_name = nodes[node_id].label

        step_type = str(raw.get("type") or "read").lower()
        steps.append(
            LearningStep(
                id=str(raw["id"]),
                order=_positive_int(raw.get("order"), position),
                title=str(raw["title"]),
                description=str(raw.get("description") or ""),
                type=step_type if step_type in STEP_TYPES else "read",
                node_id=node_id,
                node_name=node_name,
                files=_str_list(raw.get("files")),
                objectives=_str_list(raw.get("objectives")),
                estimated_time=_positive_int(raw.get("estimatedTime"), DEFAULT_STEP_MINUTES),
                prerequisites=_str_list(raw.get("prerequisites")),
                checkpoints=_str_list(raw.get("checkpoints")),
                hints=_str_list(raw.get("hints")),
            )
        )

    total = _positive_int(payload.get("estimatedTotalTime"), 0) or sum(s.estimated_time for s in steps)
    return OnboardingPath(
        overview=str(payload.get("overview") or DEFAULT_OVERVIEW),
        estimated_total_time=total,
        learning_path=steps,
        key_takeaways=_str_list(payload.get("keyTakeaways")) or list(DEFAULT_TAKEAWAYS),
        user_level=user_level,
        focus_area=focus_area,
    )
