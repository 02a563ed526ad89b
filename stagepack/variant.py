"""
Variant Selector

Classifies request labels against two category sets and resolves the
winning variant to a template descriptor.
"""

import random
from enum import Enum
from typing import Iterable, Optional, Protocol, Sequence, Tuple, TYPE_CHECKING

from pydantic import BaseModel, Field
from rich.console import Console

from .errors import ConfigError

if TYPE_CHECKING:
    from .config import StageConfig

console = Console()


class Variant(str, Enum):
    A = "A"
    B = "B"


class TemplateDescriptor(BaseModel):
    """Template identity resolved once per request."""
    archive_filename: str = Field(..., min_length=1)
    stage_entry_name: str = Field(..., min_length=1)
    variant: Variant

    model_config = {"frozen": True}


class RandomSource(Protocol):
    def choice(self, seq: Sequence): ...


def normalize_label(label: str) -> str:
    return label.strip().lower()


def count_labels(labels: Iterable[str], config: "StageConfig") -> Tuple[int, int]:
    """
    Count labels falling in category A and category B.

    Empty and unrecognized labels are ignored; repeated labels count
    once per occurrence.
    """
    count_a = 0
    count_b = 0
    for label in labels:
        if label is None:
            continue
        normalized = normalize_label(label)
        if not normalized:
            continue
        if normalized in config.category_a:
            count_a += 1
        elif normalized in config.category_b:
            count_b += 1
    return count_a, count_b


def classify(count_a: int, count_b: int, rng: Optional[RandomSource] = None) -> Variant:
    """Majority vote; ties (including 0-0) go to the random source."""
    if count_a > count_b:
        return Variant.A
    if count_b > count_a:
        return Variant.B
    if rng is None:
        rng = random.SystemRandom()
    return rng.choice((Variant.A, Variant.B))


def resolve_descriptor(variant: Variant, config: "StageConfig") -> TemplateDescriptor:
    try:
        return config.templates[variant]
    except KeyError:
        raise ConfigError(f"No template configured for variant {variant.value}")


def select_variant(
    labels: Sequence[str],
    rng: Optional[RandomSource] = None,
    config: Optional["StageConfig"] = None,
) -> TemplateDescriptor:
    """
    Pick the template for a request from its labels.

    Args:
        labels: Free-text labels (e.g. image tags) for the request
        rng: Object with a ``choice`` method used to break ties. A fresh
            SystemRandom is used per call when omitted.
        config: Stage configuration holding the category sets and
            templates. Defaults to the built-in configuration.

    Returns:
        TemplateDescriptor for the chosen variant
    """
    if config is None:
        from .config import default_config
        config = default_config()

    count_a, count_b = count_labels(labels, config)
    variant = classify(count_a, count_b, rng)
    descriptor = resolve_descriptor(variant, config)

    tie = " (tie)" if count_a == count_b else ""
    console.print(f"[blue]Variant {variant.value}{tie}: A={count_a} B={count_b} "
                  f"-> {descriptor.archive_filename}[/blue]")
    return descriptor
