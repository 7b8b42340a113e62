"""Unit tests for weighted document preparation.

Tests cover:
- Repetition counts derived from field weights
- Label prefixes and field rendering (lists, steps, enums)
- Determinism and empty records

Run with: pytest tests/test_preparation.py -v
"""

from enum import Enum

import pytest

from incident_hub.playbooks.domain import Playbook, PlaybookTrigger
from incident_hub.retrieval.domain import FieldWeight, FieldWeightConfig, WeightedRepetitionPreparer
from incident_hub.retrieval.domain.preparation import field_text
from incident_hub.retrieval.domain.value_objects import PLAYBOOK_FIELD_WEIGHTS, TICKET_FIELD_WEIGHTS
from incident_hub.tickets.domain import Ticket


def make_playbook(**overrides) -> Playbook:
    values = dict(
        id="pb-1",
        playbook_id="PB-1",
        title="Disk full",
        description="Clear space",
        tags=["Storage"],
        triggers=[PlaybookTrigger(trigger_id="s1", title="Check", action="df -h", expected_outcome="Usage shown")],
    )
    values.update(overrides)
    return Playbook(**values)


# =============================================================================
# Repetition counts
# =============================================================================


class TestRepetitions:
    """Test that weights map to ceil(weight * 10) repetitions."""

    @pytest.mark.parametrize(
        "weight,expected",
        [(0.1, 1), (0.2, 2), (0.3, 3), (0.35, 4), (0.4, 4), (0.05, 1), (1.0, 10)],
    )
    def test_repetition_count(self, weight: float, expected: int):
        preparer = WeightedRepetitionPreparer(PLAYBOOK_FIELD_WEIGHTS)
        assert preparer.repetitions(FieldWeight(name="x", weight=weight)) == expected

    def test_zero_weight_field_is_omitted(self):
        config = FieldWeightConfig(fields=[
            FieldWeight(name="title", weight=1.0),
            FieldWeight(name="description", weight=0.0),
        ])
        text = WeightedRepetitionPreparer(config).prepare({"title": "A", "description": "B"})
        assert text == " ".join(["A"] * 10)


# =============================================================================
# Playbook rendering
# =============================================================================


class TestPlaybookPreparation:
    """Test the default playbook weighting."""

    def test_fields_repeated_in_weight_order(self):
        text = WeightedRepetitionPreparer(PLAYBOOK_FIELD_WEIGHTS).prepare(make_playbook())

        expected = " ".join(
            ["Disk full"] * 3
            + ["Clear space"] * 4
            + ["Check df -h Usage shown"] * 2
            + ["Storage"] * 1
        )
        assert text == expected

    def test_deterministic(self):
        preparer = WeightedRepetitionPreparer(PLAYBOOK_FIELD_WEIGHTS)
        assert preparer.prepare(make_playbook()) == preparer.prepare(make_playbook())

    def test_empty_fields_skipped(self):
        playbook = make_playbook(description="", triggers=[], tags=[])
        text = WeightedRepetitionPreparer(PLAYBOOK_FIELD_WEIGHTS).prepare(playbook)
        assert text == "Disk full Disk full Disk full"

    def test_record_without_weighted_content_is_empty(self):
        preparer = WeightedRepetitionPreparer(PLAYBOOK_FIELD_WEIGHTS)
        assert preparer.prepare({"title": "  ", "tags": []}) == ""


# =============================================================================
# Ticket rendering
# =============================================================================


class TestTicketPreparation:
    """Test labelled ticket fields."""

    def test_labels_prefix_category_and_source(self):
        ticket = Ticket(
            id="t-1",
            ticket_id="INC001",
            source="ServiceNow",
            short_description="VPN down",
            description="",
            category="Network",
        )
        text = WeightedRepetitionPreparer(TICKET_FIELD_WEIGHTS).prepare(ticket)

        assert text.count("VPN down") == 4
        assert text.count("Category: Network") == 2
        assert text.count("Source: ServiceNow") == 1
        assert text.startswith("VPN down")


class TestFieldText:
    """Test rendering of individual field values."""

    class Color(Enum):
        RED = "red"

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ""),
            ("  padded  ", "padded"),
            (["a", "", "b"], "a b"),
            ([{"title": "T", "action": "A"}], "T A"),
            (3, "3"),
        ],
    )
    def test_renders_value(self, value, expected):
        assert field_text(value) == expected

    def test_renders_enum_value(self):
        assert field_text(self.Color.RED) == "red"
