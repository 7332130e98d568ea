"""SQLite persistence for blueprint snapshots and their derived reports.

Every analysis run appends a row to ``analyses``; nothing is overwritten.
Impact reports and onboarding paths are caches keyed per file / per user
level and are upserted. Drift reports are append-only side artifacts.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .models import Blueprint, DriftReport, ImpactReport, Snapshot

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BlueprintStore:
    """Snapshot store keyed by ``(user_id, repo_full_name)``."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        if db_path is None:
            config.ensure_base_dirs()
            db_path = config.DB_PATH
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "BlueprintStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS analyses (
                id             INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id        TEXT NOT NULL,
                repo_full_name TEXT NOT NULL,
                analysis       TEXT NOT NULL,
                analyzed_at    TEXT NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS impact_analyses (
                user_id        TEXT NOT NULL,
                repo_full_name TEXT NOT NULL,
                target_file    TEXT NOT NULL,
                report         TEXT NOT NULL,
                analyzed_at    TEXT NOT NULL,
                UNIQUE (user_id, repo_full_name, target_file)
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS drift_reports (
                id             INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id        TEXT NOT NULL,
                repo_full_name TEXT NOT NULL,
                report         TEXT NOT NULL,
                created_at     TEXT NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS onboarding_paths (
                user_id        TEXT NOT NULL,
                repo_full_name TEXT NOT NULL,
                user_level     TEXT NOT NULL,
                path           TEXT NOT NULL,
                created_at     TEXT NOT NULL,
                UNIQUE (user_id, repo_full_name, user_level)
            )
        """)
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_analyses_repo "
            "ON analyses(user_id, repo_full_name, analyzed_at)"
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save(
        self,
        user_id: str,
        repo_full_name: str,
        blueprint: Blueprint,
        analyzed_at: Optional[str] = None,
    ) -> Snapshot:
        """Persist a new snapshot. Earlier snapshots are left untouched."""
        analyzed_at = analyzed_at or utc_now()
        cur = self.conn.execute(
            "INSERT INTO analyses (user_id, repo_full_name, analysis, analyzed_at) VALUES (?, ?, ?, ?)",
            (user_id, repo_full_name, json.dumps(blueprint.to_dict()), analyzed_at),
        )
        self.conn.commit()
        return Snapshot(blueprint=blueprint, analyzed_at=analyzed_at, repo_full_name=repo_full_name, id=cur.lastrowid)

    def _row_to_snapshot(self, row: sqlite3.Row) -> Snapshot:
        return Snapshot(
            blueprint=Blueprint.from_dict(json.loads(row["analysis"])),
            analyzed_at=row["analyzed_at"],
            repo_full_name=row["repo_full_name"],
            id=row["id"],
        )

    def load_history(self, user_id: str, repo_full_name: str, limit: int = 10) -> List[Snapshot]:
        """Snapshots for a repository, most recent first."""
        rows = self.conn.execute(
            """
            SELECT * FROM analyses
            WHERE user_id = ? AND repo_full_name = ?
            ORDER BY analyzed_at DESC, id DESC
            LIMIT ?
            """,
            (user_id, repo_full_name, limit),
        ).fetchall()
        return [self._row_to_snapshot(r) for r in rows]

    def load_latest_snapshot(self, user_id: str, repo_full_name: str) -> Optional[Snapshot]:
        history = self.load_history(user_id, repo_full_name, limit=1)
        return history[0] if history else None

    def load_latest(self, user_id: str, repo_full_name: str) -> Optional[Blueprint]:
        snapshot = self.load_latest_snapshot(user_id, repo_full_name)
        return snapshot.blueprint if snapshot else None

    def list_repositories(self, user_id: str) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            """
            SELECT repo_full_name, COUNT(*) AS scans, MAX(analyzed_at) AS last_analyzed
            FROM analyses WHERE user_id = ?
            GROUP BY repo_full_name
            ORDER BY last_analyzed DESC
            """,
            (user_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def delete_repository(self, user_id: str, repo_full_name: str) -> int:
        """Remove every snapshot and cached report for a repository.

        Returns:
            Number of snapshots deleted.
        """
        cur = self.conn.cursor()
        deleted = cur.execute(
            "DELETE FROM analyses WHERE user_id = ? AND repo_full_name = ?",
            (user_id, repo_full_name),
        ).rowcount
        for table in ("impact_analyses", "drift_reports", "onboarding_paths"):
            cur.execute(
                f"DELETE FROM {table} WHERE user_id = ? AND repo_full_name = ?",
                (user_id, repo_full_name),
            )
        self.conn.commit()
        return deleted

    # ------------------------------------------------------------------
    # Impact cache
    # ------------------------------------------------------------------

    def save_impact(
        self,
        user_id: str,
        repo_full_name: str,
        report: ImpactReport,
        cache_key: Optional[str] = None,
    ) -> None:
        """Upsert a report; ``cache_key`` defaults to the report's target file."""
        self.conn.execute(
            """
            INSERT INTO impact_analyses (user_id, repo_full_name, target_file, report, analyzed_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, repo_full_name, target_file)
            DO UPDATE SET report = excluded.report, analyzed_at = excluded.analyzed_at
            """,
            (user_id, repo_full_name, cache_key or report.target_file, json.dumps(report.to_dict()), utc_now()),
        )
        self.conn.commit()

    def load_impact(self, user_id: str, repo_full_name: str, cache_key: str) -> Optional[ImpactReport]:
        row = self.conn.execute(
            "SELECT report FROM impact_analyses WHERE user_id = ? AND repo_full_name = ? AND target_file = ?",
            (user_id, repo_full_name, cache_key),
        ).fetchone()
        if row is None:
            return None
        try:
            return ImpactReport.from_dict(json.loads(row["report"]))
        except (KeyError, ValueError) as exc:
            logger.warning("Discarding unreadable impact cache for %s: %s", cache_key, exc)
            return None

    def clear_impacts(self, user_id: str, repo_full_name: str) -> int:
        cur = self.conn.execute(
            "DELETE FROM impact_analyses WHERE user_id = ? AND repo_full_name = ?",
            (user_id, repo_full_name),
        )
        self.conn.commit()
        return cur.rowcount

    # ------------------------------------------------------------------
    # Drift artifacts
    # ------------------------------------------------------------------

    def save_drift(self, user_id: str, repo_full_name: str, report: DriftReport) -> None:
        self.conn.execute(
            "INSERT INTO drift_reports (user_id, repo_full_name, report, created_at) VALUES (?, ?, ?, ?)",
            (user_id, repo_full_name, json.dumps(report.to_dict()), utc_now()),
        )
        self.conn.commit()

    def load_latest_drift(self, user_id: str, repo_full_name: str) -> Optional[DriftReport]:
        row = self.conn.execute(
            """
            SELECT report FROM drift_reports
            WHERE user_id = ? AND repo_full_name = ?
            ORDER BY created_at DESC, id DESC LIMIT 1
            """,
            (user_id, repo_full_name),
        ).fetchone()
        return DriftReport.from_dict(json.loads(row["report"])) if row else None

    # ------------------------------------------------------------------
    # Onboarding cache
    # ------------------------------------------------------------------

    def save_onboarding(self, user_id: str, repo_full_name: str, user_level: str, path: Dict[str, Any]) -> None:
        self.conn.execute(
            """
            INSERT INTO onboarding_paths (user_id, repo_full_name, user_level, path, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, repo_full_name, user_level)
            DO UPDATE SET path = excluded.path, created_at = excluded.created_at
            """,
            (user_id, repo_full_name, user_level, json.dumps(path), utc_now()),
        )
        self.conn.commit()

    def load_onboarding(self, user_id: str, repo_full_name: str, user_level: str) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(
            "SELECT path FROM onboarding_paths WHERE user_id = ? AND repo_full_name = ? AND user_level = ?",
            (user_id, repo_full_name, user_level),
        ).fetchone()
        return json.loads(row["path"]) if row else None

    def clear_onboarding(self, user_id: str, repo_full_name: str) -> None:
        self.conn.execute(
            "DELETE FROM onboarding_paths WHERE user_id = ? AND repo_full_name = ?",
            (user_id, repo_full_name),
        )
        self.conn.commit()
