"""Stage configuration: category labels, templates and packaging options."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError, NotFoundError
from .variant import TemplateDescriptor, Variant, normalize_label

DEFAULT_CATEGORY_A = frozenset({
    "person", "face", "portrait", "selfie", "character", "avatar", "figure",
})
DEFAULT_CATEGORY_B = frozenset({
    "landscape", "scenery", "building", "vehicle", "panorama", "group", "room",
})

DEFAULT_TEMPLATES = {
    Variant.A: TemplateDescriptor(
        archive_filename="template_portrait.usdz",
        stage_entry_name="poster_portrait.usda",
        variant=Variant.A,
    ),
    Variant.B: TemplateDescriptor(
        archive_filename="template_landscape.usdz",
        stage_entry_name="poster_landscape.usda",
        variant=Variant.B,
    ),
}


class StageConfig(BaseModel):
    """Pydantic model for stage packaging configuration."""

    category_a: FrozenSet[str] = Field(default=DEFAULT_CATEGORY_A)
    category_b: FrozenSet[str] = Field(default=DEFAULT_CATEGORY_B)
    templates: Dict[Variant, TemplateDescriptor] = Field(
        default_factory=lambda: dict(DEFAULT_TEMPLATES)
    )
    texture_targets: List[str] = Field(default_factory=lambda: ["textures/poster.png"])
    marker_name: Optional[str] = "version.txt"
    alignment: int = Field(default=64, ge=0, le=4096)
    directory_entries: bool = True

    model_config = {"frozen": True}

    @field_validator("category_a", "category_b", mode="before")
    @classmethod
    def normalize_categories(cls, v):
        if isinstance(v, str):
            v = [v]
        return frozenset(normalize_label(label) for label in v if normalize_label(label))

    @field_validator("alignment")
    @classmethod
    def validate_alignment(cls, v):
        if v > 1 and v & (v - 1):
            raise ValueError(f"Alignment must be a power of two, got {v}")
        return v

    @field_validator("texture_targets")
    @classmethod
    def validate_targets(cls, v):
        if not v:
            raise ValueError("At least one texture target is required")
        return v

    @model_validator(mode="after")
    def validate_model(self):
        overlap = self.category_a & self.category_b
        if overlap:
            raise ValueError(f"Category sets overlap: {sorted(overlap)}")

        missing = [variant.value for variant in Variant if variant not in self.templates]
        if missing:
            raise ValueError(f"No template for variant(s): {', '.join(missing)}")

        for variant, descriptor in self.templates.items():
            if descriptor.variant != variant:
                raise ValueError(
                    f"Template for variant {variant.value} declares variant "
                    f"{descriptor.variant.value}"
                )
        return self


@lru_cache(maxsize=1)
def default_config() -> StageConfig:
    """Built-in configuration, shared and immutable."""
    return StageConfig()


def load_config(config_path: Optional[Path] = None) -> StageConfig:
    """
    Load a StageConfig from a JSON file.

    Args:
        config_path: Path to a JSON config file, or None for the defaults

    Returns:
        Validated StageConfig
    """
    if config_path is None:
        return default_config()

    config_path = Path(config_path)
    if not config_path.exists():
        raise NotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a JSON object, got {type(data).__name__}")

    try:
        return StageConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {config_path.name}: {e}")
