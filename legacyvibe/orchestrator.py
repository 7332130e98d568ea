"""Orchestrator coordinating providers, agents, graph analysis, and storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .agents import ChunkAnalysisAgent, ImpactEnhancementAgent, OnboardingAgent, SynthesisAgent
from .chunker import create_repository_chunks, format_manifests_for_ai
from .config import Settings
from .drift import detect_drift
from .heatmap import build_debt_heatmap
from .impact import MATCH_MODES, analyze_impact
from .llm import LLMClient
from .models import Blueprint, DebtHeatmap, DriftReport, ImpactReport, OnboardingPath, RepositoryChunk, Snapshot
from .onboarding import USER_LEVELS, validate_learning_path
from .providers import RepositoryProvider
from .storage import BlueprintStore
from .synthesizer import BlueprintSynthesizer, ChunkAnalysisFn, ProgressCallback, SynthesisFn

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "No blueprint found for this repository. Please analyze it first."


class BlueprintNotFoundError(LookupError):
    """Raised when a derived view is requested before any analysis exists."""

    def __init__(self, message: str = NOT_FOUND_MESSAGE):
        super().__init__(message)


@dataclass
class AnalysisResult:
    snapshot: Snapshot
    cached: bool = False
    drift: Optional[DriftReport] = None
    chunks: List[RepositoryChunk] = field(default_factory=list)

    @property
    def blueprint(self) -> Blueprint:
        return self.snapshot.blueprint


@dataclass
class ImpactResult:
    report: ImpactReport
    cached: bool = False


@dataclass
class OnboardingResult:
    path: OnboardingPath
    cached: bool = False


class BlueprintOrchestrator:
    """Runs the analysis pipeline and serves derived views from stored snapshots."""

    def __init__(
        self,
        store: BlueprintStore,
        provider: Optional[RepositoryProvider] = None,
        settings: Optional[Settings] = None,
        llm: Optional[LLMClient] = None,
        chunk_analysis_fn: Optional[ChunkAnalysisFn] = None,
        synthesis_fn: Optional[SynthesisFn] = None,
    ):
        self.store = store
        self.provider = provider
        self.settings = settings or Settings()
        self._llm = llm
        self._chunk_analysis_fn = chunk_analysis_fn
        self._synthesis_fn = synthesis_fn

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient(self.settings.llm)
        return self._llm

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(
        self,
        user_id: str,
        owner: str,
        repo: str,
        force: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        """Synthesize a new snapshot, or return the latest one unless ``force``."""
        repo_full_name = f"{owner}/{repo}"
        notify: Callable[[str, str], None] = progress or (lambda step, message: None)

        if not force:
            latest = self.store.load_latest_snapshot(user_id, repo_full_name)
            if latest is not None:
                notify("complete", f"Using cached blueprint from {latest.analyzed_at}")
                return AnalysisResult(snapshot=latest, cached=True)

        if self.provider is None:
            raise ValueError("A repository provider is required to analyze a repository")

        notify("ingest", f"Fetching file tree for {repo_full_name}")
        files = self.provider.list_files(owner, repo)
        manifests = self.provider.fetch_manifests(owner, repo)
        manifests_text = format_manifests_for_ai(manifests) if manifests else ""

        analysis = self.settings.analysis
        chunks = create_repository_chunks(files, analysis.max_tokens_per_chunk)
        notify("ingest", f"{len(files)} entries, {len(chunks)} chunks, {len(manifests)} manifests")

        synthesizer = BlueprintSynthesizer(
            self._chunk_analysis_fn or ChunkAnalysisAgent(self.llm),
            self._synthesis_fn or SynthesisAgent(self.llm),
            content_fetcher=lambda paths, max_size: self.provider.read_files(owner, repo, paths, max_size),
            settings=analysis,
            progress=notify,
        )
        blueprint = synthesizer.synthesize(chunks, manifests_text)

        notify("drift", "Comparing with previous snapshot")
        previous = self.store.load_latest(user_id, repo_full_name)
        drift = detect_drift(previous, blueprint) if previous is not None else None

        notify("cache", "Saving snapshot")
        snapshot = self.store.save(user_id, repo_full_name, blueprint)
        if drift is not None:
            self.store.save_drift(user_id, repo_full_name, drift)
        cleared = self.store.clear_impacts(user_id, repo_full_name)
        if cleared:
            logger.info("Invalidated %d cached impact reports for %s", cleared, repo_full_name)
        self.store.clear_onboarding(user_id, repo_full_name)

        notify("complete", f"{len(blueprint.nodes)} features, {len(blueprint.edges)} connections")
        return AnalysisResult(snapshot=snapshot, cached=False, drift=drift, chunks=chunks)

    def _require_latest(self, user_id: str, repo_full_name: str) -> Blueprint:
        blueprint = self.store.load_latest(user_id, repo_full_name)
        if blueprint is None:
            raise BlueprintNotFoundError()
        return blueprint

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def impact(
        self,
        user_id: str,
        repo_full_name: str,
        target_file: str,
        enhance: bool = False,
        match_mode: str = "substring",
        refresh: bool = False,
    ) -> ImpactResult:
        """Impact of ``target_file`` on the latest snapshot.

        Results are cached per file and match mode until the next analysis.
        ``enhance`` always recomputes and stores the enriched report.
        """
        if match_mode not in MATCH_MODES:
            raise ValueError(f"match_mode must be one of {', '.join(MATCH_MODES)}")
        cache_key = target_file if match_mode == "substring" else f"{target_file}#{match_mode}"

        if not (refresh or enhance):
            cached = self.store.load_impact(user_id, repo_full_name, cache_key)
            if cached is not None:
                return ImpactResult(report=cached, cached=True)

        blueprint = self._require_latest(user_id, repo_full_name)
        report = analyze_impact(target_file, blueprint, match_mode=match_mode)
        if enhance:
            report = ImpactEnhancementAgent(self.llm).enhance(report, blueprint)

        self.store.save_impact(user_id, repo_full_name, report, cache_key=cache_key)
        return ImpactResult(report=report, cached=False)

    def drift(self, user_id: str, repo_full_name: str) -> DriftReport:
        """Drift between the two most recent snapshots (empty with only one)."""
        history = self.store.load_history(user_id, repo_full_name, limit=2)
        if not history:
            raise BlueprintNotFoundError()
        if len(history) == 1:
            return DriftReport()
        return detect_drift(history[1].blueprint, history[0].blueprint)

    def heatmap(self, user_id: str, repo_full_name: str, limit: Optional[int] = None) -> DebtHeatmap:
        if limit is None:
            limit = self.settings.analysis.history_limit
        return build_debt_heatmap(self.store.load_history(user_id, repo_full_name, limit=limit))

    def history(self, user_id: str, repo_full_name: str, limit: Optional[int] = None) -> List[Snapshot]:
        if limit is None:
            limit = self.settings.analysis.history_limit
        return self.store.load_history(user_id, repo_full_name, limit=limit)

    def onboarding(
        self,
        user_id: str,
        repo_full_name: str,
        user_level: str = "intermediate",
        focus_area: Optional[str] = None,
        force: bool = False,
    ) -> OnboardingResult:
        if user_level not in USER_LEVELS:
            raise ValueError(f"user_level must be one of {', '.join(USER_LEVELS)}")

        blueprint = self._require_latest(user_id, repo_full_name)
        if not force:
            cached = self.store.load_onboarding(user_id, repo_full_name, user_level)
            if cached is not None:
                path = validate_learning_path(
                    cached, blueprint, user_level, cached.get("focusArea")
                )
                return OnboardingResult(path=path, cached=True)

        raw = OnboardingAgent(self.llm).generate(repo_full_name, blueprint, user_level, focus_area)
        path = validate_learning_path(raw, blueprint, user_level, focus_area)
        self.store.save_onboarding(user_id, repo_full_name, user_level, path.to_dict())
        return OnboardingResult(path=path, cached=False)
