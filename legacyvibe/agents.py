"""LLM-backed agents: chunk analysis, blueprint merge, impact enrichment, onboarding."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .chunker import format_chunk_for_ai
from .llm import LLMClient, LLMResponseError
from .models import AffectedNode, Blueprint, ImpactReport, RepositoryChunk

logger = logging.getLogger(__name__)

NODE_SCHEMA = """{
  "id": "kebab-case-unique-id",
  "label": "Human Friendly Feature Name",
  "description": "One or two sentences on what the feature does for the business",
  "files": ["path/to/file.ts"],
  "risk": "High" | "Med" | "Low",
  "vibe": "stable" | "active" | "fragile" | "boilerplate",
  "entryPoints": ["path/to/file.ts:functionName"],
  "conventions": ["pattern the feature follows"]
}"""

EDGE_SCHEMA = """{
  "source": "node-id",
  "target": "node-id",
  "label": "what flows between them",
  "type": "data" | "control" | "config"
}"""

RISK_GUIDE = (
    "Risk: High for authentication, payments, data integrity and security boundaries; "
    "Med for core business workflows; Low for presentation and utilities."
)


class ChunkAnalysisAgent:
    """Extracts business features from one repository chunk."""

    system_prompt = (
        "You are the LegacyVibe Architect. You read one section of a codebase and "
        "identify the business features it implements, named so a non-technical "
        "founder understands them.\n\n"
        f"{RISK_GUIDE}\n\n"
        "Return ONLY a JSON object of the form:\n"
        '{"nodes": [NODE], "edges": [EDGE], "insights": ["short observation"]}\n\n'
        f"NODE:\n{NODE_SCHEMA}\n\nEDGE:\n{EDGE_SCHEMA}"
    )

    def __init__(self, llm: LLMClient, max_tokens: int = 8192):
        self.llm = llm
        self.max_tokens = max_tokens

    def __call__(self, chunk: RepositoryChunk, manifests_text: str, contents: Dict[str, str]) -> Dict[str, Any]:
        return self.llm.generate_json(
            self.system_prompt,
            self._build_chunk_prompt(chunk, manifests_text, contents),
            self.max_tokens,
        )

    def _build_chunk_prompt(self, chunk: RepositoryChunk, manifests_text: str, contents: Dict[str, str]) -> str:
        parts = [format_chunk_for_ai(chunk)]
        if manifests_text:
            parts.append(manifests_text)
        if contents:
            parts.append("KEY FILE CONTENTS:")
            for path, text in contents.items():
                parts.append(f"\n--- {path} ---\n{text}")
        parts.append(
            "\nIdentify 2-6 features in this section. Only reference files listed above. "
            "Edges may point at features you expect in other sections; use descriptive ids."
        )
        return "\n".join(parts)


class SynthesisAgent:
    """Merges per-chunk features into one coherent blueprint."""

    system_prompt = (
        "You are the LegacyVibe Architect. You receive candidate features found in "
        "separate sections of one repository. Merge duplicates, keep the union of "
        "their files, pick the higher risk when candidates disagree, and connect the "
        "features with edges that describe real data or control flow.\n\n"
        f"{RISK_GUIDE}\n\n"
        "Aim for 6-15 features. Every edge must reference node ids you return.\n"
        'Return ONLY a JSON object: {"nodes": [NODE], "edges": [EDGE]}\n\n'
        f"NODE:\n{NODE_SCHEMA}\n\nEDGE:\n{EDGE_SCHEMA}"
    )

    def __init__(self, llm: LLMClient, max_tokens: int = 16000):
        self.llm = llm
        self.max_tokens = max_tokens

    def __call__(self, raw: Dict[str, Any], summary: str) -> Dict[str, Any]:
        prompt = (
            f"SECTION SUMMARY:\n{summary}\n\n"
            f"CANDIDATE GRAPH:\n{json.dumps(raw, indent=2)}\n\n"
            "Produce the final merged blueprint."
        )
        return self.llm.generate_json(self.system_prompt, prompt, self.max_tokens)


class ImpactEnhancementAgent:
    """Adds technical reasons and sharper recommendations to an impact report."""

    system_prompt = (
        "You are a senior software engineer analyzing code change impact. Provide "
        "specific, technical insights about how changing a file affects other features.\n\n"
        "Be concise, technical, and actionable. Focus on:\n"
        "- Specific technical dependencies (APIs, data structures, interfaces)\n"
        "- Actual code-level concerns (breaking changes, type mismatches, side effects)\n"
        "- Real testing requirements (what specific tests need updating)\n"
        "- Concrete risks (not generic warnings)\n\n"
        "Keep responses brief - 1-2 sentences per insight."
    )

    def __init__(self, llm: LLMClient, max_tokens: int = 800, top_n: int = 5):
        self.llm = llm
        self.max_tokens = max_tokens
        self.top_n = top_n

    def _describe(self, nodes: List[AffectedNode], blueprint: Blueprint) -> str:
        by_id = blueprint.node_by_id()
        lines = []
        for node in nodes[: self.top_n]:
            files = by_id[node.id].files[:3] if node.id in by_id else []
            lines.append(f"- {node.label} [{node.id}] ({node.risk} risk): {node.description}")
            lines.append(f"  Files: {', '.join(files)}")
        return "\n".join(lines) or "- None"

    def _build_impact_prompt(self, report: ImpactReport, blueprint: Blueprint) -> str:
        direct = report.direct_impact[: self.top_n]
        indirect = report.indirect_impact[: self.top_n]
        return (
            f"Analyze the impact of changing file: {report.target_file}\n\n"
            f"DIRECTLY AFFECTED FEATURES ({len(direct)}):\n{self._describe(direct, blueprint)}\n\n"
            f"INDIRECTLY AFFECTED FEATURES ({len(indirect)}):\n{self._describe(indirect, blueprint)}\n\n"
            f"RISK SCORE: {report.risk_score}/100 ({report.risk_level})\n\n"
            "Provide:\n"
            '1. Enhanced "reason" for each directly affected feature (1 sentence, technical)\n'
            '2. Enhanced "reason" for each indirectly affected feature (1 sentence, technical)\n'
            "3. 3-5 specific, actionable recommendations (not generic)\n\n"
            "Return JSON only:\n"
            '{"directReasons": {"nodeId": "reason"}, "indirectReasons": {"nodeId": "reason"}, '
            '"recommendations": ["..."]}'
        )

    def enhance(self, report: ImpactReport, blueprint: Blueprint) -> ImpactReport:
        """Return an enriched copy, or ``report`` itself if the model fails."""
        if not report.direct_impact:
            return report
        try:
            payload = self.llm.generate_json(
                self.system_prompt, self._build_impact_prompt(report, blueprint), self.max_tokens
            )
        except LLMResponseError as exc:
            logger.warning("Impact enhancement failed, keeping deterministic report: %s", exc)
            return report

        direct_reasons = payload.get("directReasons") or {}
        indirect_reasons = payload.get("indirectReasons") or {}
        if not isinstance(direct_reasons, dict) or not isinstance(indirect_reasons, dict):
            logger.warning("Impact enhancement returned malformed reasons")
            return report

        recommendations = payload.get("recommendations")
        if not isinstance(recommendations, list) or not recommendations:
            recommendations = report.recommendations

        return replace(
            report,
            direct_impact=[
                replace(n, reason=str(direct_reasons.get(n.id) or n.reason)) for n in report.direct_impact
            ],
            indirect_impact=[
                replace(n, reason=str(indirect_reasons.get(n.id) or n.reason)) for n in report.indirect_impact
            ],
            recommendations=[str(r) for r in recommendations],
        )


class OnboardingAgent:
    """Asks the model for a step-by-step learning path through a blueprint."""

    LEVEL_GUIDANCE = {
        "beginner": "Start with foundational concepts, explain basics, more reading steps",
        "intermediate": "Balanced mix of reading and hands-on, assume programming knowledge",
        "advanced": "Focus on architecture patterns, integration, advanced concepts",
    }

    def __init__(self, llm: LLMClient, max_tokens: int = 8192):
        self.llm = llm
        self.max_tokens = max_tokens

    def _build_system_prompt(self, user_level: str, focus_area: Optional[str]) -> str:
        focus = f"Focus the learning path on: {focus_area}" if focus_area else "Cover the most important features"
        return (
            "You are an expert developer onboarding coach. Create a learning path for a new "
            "developer joining a codebase, from simple to complex.\n\n"
            "STEP TYPES: read, explore, modify, test.\n"
            f"DIFFICULTY: {self.LEVEL_GUIDANCE.get(user_level, self.LEVEL_GUIDANCE['intermediate'])}\n\n"
            "RULES:\n"
            "1. Start with stable or boilerplate, low-risk features\n"
            "2. 8-12 steps, 180-360 minutes in total\n"
            "3. Include at least one modify step\n"
            f"4. {focus}\n"
            "5. nodeId must match a node id from the blueprint and nodeName its label\n\n"
            "Return ONLY a JSON object:\n"
            '{"overview": "...", "keyTakeaways": ["..."], "estimatedTotalTime": 240, '
            '"learningPath": [{"id": "step-1", "order": 1, "title": "...", "description": "...", '
            '"type": "read", "nodeId": "...", "nodeName": "...", "files": [], "objectives": [], '
            '"estimatedTime": 20, "prerequisites": [], "checkpoints": [], "hints": []}]}'
        )

    def generate(
        self,
        repo_full_name: str,
        blueprint: Blueprint,
        user_level: str = "intermediate",
        focus_area: Optional[str] = None,
    ) -> Dict[str, Any]:
        prompt = (
            f"Create an onboarding learning path for this codebase:\n"
            f"REPOSITORY: {repo_full_name}\n"
            f"USER LEVEL: {user_level}\n"
            + (f"FOCUS AREA: {focus_area}\n" if focus_area else "")
            + f"BLUEPRINT:\n{json.dumps(blueprint.to_dict(), indent=2)}"
        )
        return self.llm.generate_json(self._build_system_prompt(user_level, focus_area), prompt, self.max_tokens)
