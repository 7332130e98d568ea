"""Pytest configuration and fixtures for LegacyVibe tests."""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator, List, Optional

import pytest

from legacyvibe.models import Blueprint, Snapshot
from legacyvibe.storage import BlueprintStore


CHUNK_PARTIAL = {
    "nodes": [
        {
            "id": "checkout-flow",
            "label": "Checkout Flow",
            "description": "Lets signed-in shoppers pay for their cart.",
            "files": ["api/routes.py", "app.py"],
            "risk": "Med",
        }
    ],
    "edges": [],
    "insights": ["Routes delegate payment to the billing service"],
}

MERGED_BLUEPRINT = {
    "nodes": [
        {
            "id": "checkout-flow",
            "label": "Checkout Flow",
            "description": "Lets signed-in shoppers pay for their cart.",
            "files": ["api/routes.py", "app.py"],
            "risk": "Med",
            "vibe": "active",
        },
        {
            "id": "user-auth",
            "label": "User Authentication",
            "description": "Keeps anonymous visitors out of checkout.",
            "files": ["api/auth.py", "models/user.py"],
            "risk": "High",
        },
        {
            "id": "billing",
            "label": "Billing Engine",
            "description": "Charges customers.",
            "files": ["services/billing_service.py"],
            "risk": "High",
            "entryPoints": ["services/billing_service.py:charge"],
        },
    ],
    "edges": [
        {"source": "checkout-flow", "target": "billing", "label": "charges", "type": "control"},
        {"source": "checkout-flow", "target": "User Authentication", "label": "requires login"},
        {"source": "billing", "target": "notifications", "label": "sends receipts"},
    ],
}

LEARNING_PATH = {
    "overview": "Start at checkout and work towards billing.",
    "keyTakeaways": ["Checkout delegates to billing"],
    "learningPath": [
        {
            "id": "step-1",
            "order": 1,
            "title": "Walk the checkout",
            "type": "read",
            "nodeId": "checkout-flow",
            "nodeName": "Checkout Flow",
            "files": ["api/routes.py"],
            "estimatedTime": 20,
        },
        {
            "id": "step-2",
            "title": "Follow the money",
            "type": "explore",
            "nodeId": "payments",
            "nodeName": "Billing",
        },
    ],
}

IMPACT_ENHANCEMENT = {
    "directReasons": {"billing": "charge() signature is called by checkout."},
    "indirectReasons": {"checkout-flow": "Checkout awaits the charge result."},
    "recommendations": ["Add a contract test for charge()"],
}


class MockLLMClient:
    """Canned structured responses keyed off the system prompt."""

    def __init__(self, settings=None, provider=None):
        self.settings = settings
        self.provider_name = "mock"
        self.calls: List[dict] = []

    def _respond(self, system_prompt: str) -> dict:
        if "onboarding coach" in system_prompt:
            return LEARNING_PATH
        if "code change impact" in system_prompt:
            return IMPACT_ENHANCEMENT
        if "separate sections" in system_prompt:
            return MERGED_BLUEPRINT
        return CHUNK_PARTIAL

    def generate(self, system_prompt: str, user_prompt: str, max_tokens: int = 4096) -> Optional[str]:
        return json.dumps(self.generate_json(system_prompt, user_prompt, max_tokens))

    def generate_json(self, system_prompt: str, user_prompt: str, max_tokens: int = 4096) -> dict:
        self.calls.append({"system": system_prompt, "user": user_prompt})
        return json.loads(json.dumps(self._respond(system_prompt)))


@pytest.fixture(autouse=True)
def _mock_llm_client(monkeypatch):
    """Replace LLMClient everywhere so no test reaches a real provider."""
    monkeypatch.setattr("legacyvibe.llm.LLMClient", MockLLMClient)
    monkeypatch.setattr("legacyvibe.orchestrator.LLMClient", MockLLMClient)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def temp_home(temp_dir: Path, monkeypatch) -> Path:
    """Point config, database, and credentials at a temporary home."""
    home = temp_dir / "home"
    monkeypatch.setattr("legacyvibe.config.BASE_DIR", home)
    monkeypatch.setattr("legacyvibe.config.DB_PATH", home / "blueprints.db")
    monkeypatch.setattr("legacyvibe.config.CONFIG_FILE", home / "config.toml")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    return home


@pytest.fixture
def temp_store(temp_dir: Path) -> Generator[BlueprintStore, None, None]:
    """Create a BlueprintStore with temporary storage."""
    store = BlueprintStore(temp_dir / "test.db")
    yield store
    store.close()


@pytest.fixture
def sample_repo_path() -> Path:
    """Get path to sample test repository."""
    return Path(__file__).parent / "fixtures" / "sample_repo"


@pytest.fixture
def merged_payload() -> dict:
    return json.loads(json.dumps(MERGED_BLUEPRINT))


@pytest.fixture
def two_node_blueprint() -> Blueprint:
    """A{x.ts, High} -> B{y.ts, Low}."""
    return Blueprint.from_dict({
        "nodes": [
            {"id": "A", "label": "Alpha", "files": ["x.ts"], "risk": "High"},
            {"id": "B", "label": "Beta", "files": ["y.ts"], "risk": "Low"},
        ],
        "edges": [{"source": "A", "target": "B", "label": "feeds"}],
    })


@pytest.fixture
def commerce_blueprint() -> Blueprint:
    """Six features wired as a small shop.

    checkout -> payments -> ledger -> reports
    checkout <- cart, auth -> checkout
    """
    return Blueprint.from_dict({
        "nodes": [
            {"id": "checkout", "label": "Checkout", "files": ["src/checkout/index.ts", "src/checkout/cart.ts"], "risk": "Med"},
            {"id": "payments", "label": "Payment Gateway", "files": ["src/payments/stripe.ts"], "risk": "High"},
            {"id": "ledger", "label": "Ledger", "files": ["src/ledger/book.ts"], "risk": "Med"},
            {"id": "reports", "label": "Reports", "files": ["src/reports/daily.ts"], "risk": "Low"},
            {"id": "cart", "label": "Cart", "files": ["src/cart/store.ts"], "risk": "Low"},
            {"id": "auth", "label": "User Auth", "files": ["src/auth/session.ts"], "risk": "High"},
        ],
        "edges": [
            {"source": "checkout", "target": "payments", "label": "charges"},
            {"source": "payments", "target": "ledger", "label": "records"},
            {"source": "ledger", "target": "reports", "label": "aggregates"},
            {"source": "cart", "target": "checkout", "label": "submits"},
            {"source": "auth", "target": "checkout", "label": "guards"},
        ],
    })


def risk_blueprint(high: int, med: int, low: int, prefix: str = "n") -> Blueprint:
    risks = ["High"] * high + ["Med"] * med + ["Low"] * low
    return Blueprint.from_dict({
        "nodes": [
            {"id": f"{prefix}{i}", "label": f"Feature {i}", "files": [f"f{i}.ts"], "risk": r}
            for i, r in enumerate(risks)
        ],
        "edges": [],
    })


@pytest.fixture
def improving_history() -> List[Snapshot]:
    """Scores 80 -> 60 -> 40 chronologically, returned most recent first."""
    oldest = Snapshot(risk_blueprint(6, 4, 0), "2024-01-01T00:00:00+00:00")
    middle = Snapshot(risk_blueprint(2, 8, 0), "2024-02-01T00:00:00+00:00")
    latest = Snapshot(risk_blueprint(2, 3, 5), "2024-03-01T00:00:00+00:00")
    return [latest, middle, oldest]


@pytest.fixture
def learning_path_payload() -> dict:
    return json.loads(json.dumps(LEARNING_PATH))
