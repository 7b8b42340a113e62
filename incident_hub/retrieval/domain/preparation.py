"""
Document Preparation
====================

Turns a structured record into one text blob for embedding.

Many embedding models respond to term frequency, so a field's importance
is expressed by repeating its text ``ceil(weight * scale)`` times. The
strategy sits behind IDocumentPreparer so a weighted-pooling
implementation can replace it without touching the rest of the pipeline.
"""

import math
from enum import Enum
from abc import ABC, abstractmethod
from typing import Any, Iterable, List

from incident_hub.retrieval.domain.value_objects import FieldWeight, FieldWeightConfig

REPETITION_SCALE = 10

# Keys read from step/trigger entries, in rendering order
STEP_PARTS = ("title", "action", "expected_outcome")


class IDocumentPreparer(ABC):
    """Interface for record → embedding text conversion."""

    @abstractmethod
    def prepare(self, record: Any) -> str:
        """
        Build the text to embed for a record.

        Must be deterministic: the same record always yields the same string.
        Returns an empty string when the record has no weighted content.
        """


def _read(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _render_entry(entry: Any) -> str:
    if isinstance(entry, str):
        return entry.strip()
    parts = []
    for key in STEP_PARTS:
        value = _read(entry, key)
        if value is not None and str(value).strip():
            parts.append(str(value).strip())
    return " ".join(parts)


def _join(items: Iterable[str]) -> str:
    return " ".join(item for item in items if item)


def field_text(value: Any) -> str:
    """Text representation of one field value."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return _join(_render_entry(entry) for entry in value)
    if isinstance(value, Enum):
        return str(value.value).strip()
    return str(value).strip()


class WeightedRepetitionPreparer(IDocumentPreparer):
    """
    Repeats each weighted field in proportion to its weight.

    Example with title=0.3 and description=0.4:
        "Disk full Disk full Disk full Clear /var ... (4 times)"
    """

    def __init__(self, weights: FieldWeightConfig, scale: int = REPETITION_SCALE):
        self._weights = weights
        self._scale = scale

    @property
    def field_names(self) -> List[str]:
        return self._weights.field_names

    def repetitions(self, field_weight: FieldWeight) -> int:
        # Rounded first so 0.3 * 10 counts as 3, not 3.0000000000000004
        return math.ceil(round(field_weight.weight * self._scale, 6))

    def prepare(self, record: Any) -> str:
        parts: List[str] = []
        for field_weight in self._weights.fields:
            text = field_text(_read(record, field_weight.name))
            if not text:
                continue
            if field_weight.label:
                text = f"{field_weight.label}: {text}"
            parts.extend([text] * self.repetitions(field_weight))
        return " ".join(parts)
