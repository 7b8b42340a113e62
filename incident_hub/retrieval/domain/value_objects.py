"""
Retrieval Value Objects
=======================

Field-weight configuration for document preparation.

Weights are global per record type. Each weight lies in [0, 1] and the
weights of one record type sum to approximately 1. Defaults are built in;
a YAML file can override them:

    playbook:
      - {name: title, weight: 0.3}
      - {name: description, weight: 0.4}
      - {name: triggers, weight: 0.2}
      - {name: tags, weight: 0.1}
    ticket:
      - {name: category, weight: 0.2, label: Category}
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from incident_hub.core import ConfigurationException
from incident_hub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

WEIGHT_SUM_TOLERANCE = 0.05


class FieldWeight(BaseModel):
    """Importance of one record field in the embedded text."""
    name: str = Field(min_length=1, description="Record attribute name")
    weight: float = Field(ge=0.0, le=1.0, description="Relative importance")
    label: Optional[str] = Field(default=None, description="Prefix rendered as 'Label: value'")


class FieldWeightConfig(BaseModel):
    """Ordered field weights for one record type."""
    fields: List[FieldWeight]

    @field_validator("fields")
    @classmethod
    def validate_weights(cls, v: List[FieldWeight]) -> List[FieldWeight]:
        """Weights must be unique per field and sum to about 1."""
        if not v:
            raise ValueError("at least one weighted field is required")

        names = [f.name for f in v]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate field names in {names}")

        total = sum(f.weight for f in v)
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"field weights sum to {total:.3f}, expected 1.0")
        return v

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


PLAYBOOK_FIELD_WEIGHTS = FieldWeightConfig(fields=[
    FieldWeight(name="title", weight=0.3),
    FieldWeight(name="description", weight=0.4),
    FieldWeight(name="triggers", weight=0.2),
    FieldWeight(name="tags", weight=0.1),
])

TICKET_FIELD_WEIGHTS = FieldWeightConfig(fields=[
    FieldWeight(name="short_description", weight=0.35),
    FieldWeight(name="description", weight=0.35),
    FieldWeight(name="category", weight=0.20, label="Category"),
    FieldWeight(name="source", weight=0.10, label="Source"),
])


class RetrievalConfig(BaseModel):
    """Field weights for every record type."""
    playbook: FieldWeightConfig = Field(default=PLAYBOOK_FIELD_WEIGHTS)
    ticket: FieldWeightConfig = Field(default=TICKET_FIELD_WEIGHTS)

    @field_validator("playbook", "ticket", mode="before")
    @classmethod
    def accept_field_list(cls, v):
        """Allow a bare list of fields in YAML."""
        if isinstance(v, list):
            return {"fields": v}
        return v

    def weights_for(self, record_type: str) -> FieldWeightConfig:
        if record_type not in ("playbook", "ticket"):
            raise ConfigurationException(f"No field weights for record type '{record_type}'")
        return getattr(self, record_type)


def load_retrieval_config(path: Optional[Path] = None) -> RetrievalConfig:
    """
    Load field weights from YAML, falling back to built-in defaults.

    Raises:
        ConfigurationException: If the file exists but is malformed
    """
    if path is None or not Path(path).exists():
        logger.debug("Retrieval config file not found, using defaults", extra={"path": str(path)})
        return RetrievalConfig()

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return RetrievalConfig(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ConfigurationException(
            f"Invalid retrieval config in {path}",
            {"error": str(e)}
        )
