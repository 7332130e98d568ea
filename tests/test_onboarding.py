"""Tests for learning path validation."""

import pytest

from legacyvibe.models import Blueprint
from legacyvibe.onboarding import LearningPathError, validate_learning_path
from legacyvibe.synthesizer import repair_blueprint


@pytest.fixture
def blueprint(merged_payload) -> Blueprint:
    return repair_blueprint(merged_payload)


@pytest.fixture
def payload(learning_path_payload):
    return learning_path_payload


class TestValidateLearningPath:
    """Test repair of model-generated learning paths."""

    def test_valid_steps_are_kept(self, payload, blueprint):
        path = validate_learning_path(payload, blueprint, "beginner", "payments")

        assert path.total_steps == 2
        assert path.user_level == "beginner"
        assert path.focus_area == "payments"
        first = path.learning_path[0]
        assert (first.id, first.node_id, first.estimated_time, first.files) == (
            "step-1", "checkout-flow", 20, ["api/routes.py"]
        )

    def test_unknown_node_repointed_by_name(self, payload, blueprint):
        """nodeName 'Billing' matches the 'Billing Engine' label."""
        step = validate_learning_path(payload, blueprint).learning_path[1]

        assert step.node_id == "billing"
        assert step.node_name == "Billing Engine"

    def test_unknown_node_without_match_uses_first(self, payload, blueprint):
        payload["learningPath"][1]["nodeName"] = "Quantum Flux"
        step = validate_learning_path(payload, blueprint).learning_path[1]
        assert step.node_id == "checkout-flow"

    def test_defaults_filled(self, payload, blueprint):
        path = validate_learning_path(payload, blueprint)
        second = path.learning_path[1]

        assert second.order == 2
        assert second.estimated_time == 15
        assert second.objectives == [] and second.hints == []
        assert path.estimated_total_time == 35
        assert path.key_takeaways == ["Checkout delegates to billing"]

    def test_missing_overview_and_takeaways(self, payload, blueprint):
        del payload["overview"]
        del payload["keyTakeaways"]
        path = validate_learning_path(payload, blueprint)

        assert path.overview == "A comprehensive learning path through this codebase."
        assert path.key_takeaways == ["Understanding the codebase structure"]

    def test_explicit_total_time_wins(self, payload, blueprint):
        payload["estimatedTotalTime"] = 240
        assert validate_learning_path(payload, blueprint).estimated_total_time == 240

    def test_unknown_step_type_becomes_read(self, payload, blueprint):
        payload["learningPath"][0]["type"] = "meditate"
        assert validate_learning_path(payload, blueprint).learning_path[0].type == "read"

    def test_missing_array(self, blueprint):
        with pytest.raises(LearningPathError, match="missing the learningPath array"):
            validate_learning_path({"overview": "x"}, blueprint)

    def test_empty_array(self, blueprint):
        with pytest.raises(LearningPathError, match="empty learning path"):
            validate_learning_path({"learningPath": []}, blueprint)

    def test_step_missing_required_field(self, payload, blueprint):
        del payload["learningPath"][1]["title"]
        with pytest.raises(LearningPathError, match="Learning step 2 is missing required fields"):
            validate_learning_path(payload, blueprint)

    def test_empty_blueprint(self, payload):
        with pytest.raises(LearningPathError):
            validate_learning_path(payload, Blueprint())

    def test_serializes_camel_case(self, payload, blueprint):
        data = validate_learning_path(payload, blueprint).to_dict()

        assert data["totalSteps"] == 2
        assert data["learningPath"][0]["nodeId"] == "checkout-flow"
        assert data["userLevel"] == "intermediate"
