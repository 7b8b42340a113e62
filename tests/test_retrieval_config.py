"""Unit tests for field-weight configuration.

Run with: pytest tests/test_retrieval_config.py -v
"""

import pytest
from pydantic import ValidationError

from incident_hub.core import ConfigurationException
from incident_hub.retrieval.domain import FieldWeight, FieldWeightConfig, RetrievalConfig, load_retrieval_config


class TestFieldWeightConfig:
    """Test weight validation."""

    def test_defaults_sum_to_one(self):
        config = RetrievalConfig()
        assert sum(f.weight for f in config.playbook.fields) == pytest.approx(1.0)
        assert sum(f.weight for f in config.ticket.fields) == pytest.approx(1.0)
        assert config.playbook.field_names == ["title", "description", "triggers", "tags"]

    def test_sum_within_tolerance_accepted(self):
        config = FieldWeightConfig(fields=[
            FieldWeight(name="a", weight=0.5),
            FieldWeight(name="b", weight=0.53),
        ])
        assert config.field_names == ["a", "b"]

    def test_sum_far_from_one_rejected(self):
        with pytest.raises(ValidationError):
            FieldWeightConfig(fields=[
                FieldWeight(name="a", weight=0.5),
                FieldWeight(name="b", weight=0.2),
            ])

    def test_duplicate_fields_rejected(self):
        with pytest.raises(ValidationError):
            FieldWeightConfig(fields=[
                FieldWeight(name="a", weight=0.5),
                FieldWeight(name="a", weight=0.5),
            ])

    def test_weight_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            FieldWeight(name="a", weight=1.5)

    def test_unknown_record_type(self):
        with pytest.raises(ConfigurationException):
            RetrievalConfig().weights_for("incident")


class TestLoadRetrievalConfig:
    """Test YAML loading."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_retrieval_config(tmp_path / "absent.yaml")
        assert config == RetrievalConfig()

    def test_yaml_overrides_one_record_type(self, tmp_path):
        path = tmp_path / "retrieval.yaml"
        path.write_text(
            "ticket:\n"
            "  - {name: short_description, weight: 0.6}\n"
            "  - {name: category, weight: 0.4, label: Category}\n"
        )

        config = load_retrieval_config(path)

        assert config.ticket.field_names == ["short_description", "category"]
        assert config.ticket.fields[1].label == "Category"
        assert config.playbook == RetrievalConfig().playbook

    def test_invalid_weights_raise_configuration_error(self, tmp_path):
        path = tmp_path / "retrieval.yaml"
        path.write_text("playbook:\n  - {name: title, weight: 0.2}\n")

        with pytest.raises(ConfigurationException):
            load_retrieval_config(path)

    def test_malformed_yaml_raises_configuration_error(self, tmp_path):
        path = tmp_path / "retrieval.yaml"
        path.write_text("playbook: [unclosed\n")

        with pytest.raises(ConfigurationException):
            load_retrieval_config(path)
