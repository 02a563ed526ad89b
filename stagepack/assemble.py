"""
Container Assembly

Composes the pipeline for one request:
read template -> substitute textures -> write container.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from rich.console import Console

from .config import StageConfig, default_config
from .errors import ConfigError, StagePackError
from .reader import read_archive
from .substitute import PayloadSource, SubstitutionMap, add_marker, apply_substitutions
from .variant import RandomSource, TemplateDescriptor, select_variant
from .writer import write_container

console = Console()


@dataclass
class AssemblyStats:
    """What one assembly read, replaced and wrote."""
    template_entries: int = 0
    template_bytes: int = 0
    substituted_bytes: int = 0
    container_bytes: int = 0
    read_seconds: float = 0.0
    substitute_seconds: float = 0.0
    write_seconds: float = 0.0

    @property
    def total_seconds(self) -> float:
        return self.read_seconds + self.substitute_seconds + self.write_seconds


@dataclass
class AssemblyResult:
    """Outcome of a successful assembly."""
    container_path: Path
    descriptor: TemplateDescriptor
    substituted: List[str]
    entry_count: int
    stats: AssemblyStats


def timestamp_marker() -> str:
    """Millisecond timestamp used as the default cache marker content."""
    return str(int(time.time() * 1000))


def resolve_template_path(template_path: Path, descriptor: TemplateDescriptor) -> Path:
    """Join the descriptor's archive name onto a template directory."""
    template_path = Path(template_path)
    if template_path.is_dir():
        return template_path / descriptor.archive_filename
    return template_path


def build_substitutions(
    images: Sequence[Optional[PayloadSource]],
    config: Optional[StageConfig] = None,
) -> Dict[str, Optional[PayloadSource]]:
    """
    Pair replacement images with the configured texture targets, in order.

    Raises:
        ConfigError: More images than configured targets
    """
    config = config or default_config()
    targets = config.texture_targets
    if len(images) > len(targets):
        raise ConfigError(
            f"Got {len(images)} images but only {len(targets)} texture targets are configured"
        )
    return dict(zip(targets, images))


def assemble_container(
    template_path: Path,
    substitutions: SubstitutionMap,
    descriptor: TemplateDescriptor,
    destination: Path,
    marker: Optional[str] = None,
    config: Optional[StageConfig] = None,
) -> AssemblyResult:
    """
    Rebuild a template container with substituted assets.

    Args:
        template_path: Template container, or a directory holding
            ``descriptor.archive_filename``
        substitutions: Mapping of entry path to replacement payload source
        descriptor: Template descriptor from the variant selector
        destination: Output path for the finished container
        marker: Content for the cache marker file; skipped when None or
            when the config disables the marker
        config: Stage configuration (alignment, directory entries, marker)

    Returns:
        AssemblyResult describing the written container
    """
    config = config or default_config()
    stats = AssemblyStats()

    destination = Path(destination)
    archive_path = resolve_template_path(template_path, descriptor)
    console.print(f"[bold]Assembling {destination.name} from {archive_path.name}[/bold]")

    # Stage 1: Read
    stage_start = time.perf_counter()
    try:
        tree = read_archive(archive_path)
    except StagePackError as e:
        console.print(f"[bold red]Reading template failed:[/bold red] {e}")
        raise
    stats.read_seconds = time.perf_counter() - stage_start
    stats.template_entries = len(tree)
    stats.template_bytes = sum(len(e.payload) for e in tree.files())

    # Stage 2: Substitute
    stage_start = time.perf_counter()
    try:
        substituted = apply_substitutions(tree, substitutions)
        if marker is not None and config.marker_name:
            substituted.append(add_marker(tree, config.marker_name, marker))
    except StagePackError as e:
        console.print(f"[bold red]Substitution failed:[/bold red] {e}")
        raise
    stats.substitute_seconds = time.perf_counter() - stage_start
    stats.substituted_bytes = sum(len(tree.get(path).payload) for path in set(substituted))

    # Stage 3: Write
    stage_start = time.perf_counter()
    try:
        container_path = write_container(
            tree,
            descriptor,
            destination,
            alignment=config.alignment,
            directory_entries=config.directory_entries,
        )
    except StagePackError as e:
        console.print(f"[bold red]Writing container failed:[/bold red] {e}")
        raise
    stats.write_seconds = time.perf_counter() - stage_start
    stats.container_bytes = container_path.stat().st_size

    return AssemblyResult(
        container_path=container_path,
        descriptor=descriptor,
        substituted=substituted,
        entry_count=len(tree),
        stats=stats,
    )


def build_stage(
    labels: Sequence[str],
    template_dir: Path,
    images: Sequence[Optional[PayloadSource]],
    destination: Path,
    rng: Optional[RandomSource] = None,
    marker: Optional[str] = None,
    config: Optional[StageConfig] = None,
) -> AssemblyResult:
    """Full request: select the variant, then assemble with the given images."""
    config = config or default_config()
    descriptor = select_variant(labels, rng=rng, config=config)
    substitutions = build_substitutions(images, config)
    return assemble_container(
        template_dir,
        substitutions,
        descriptor,
        destination,
        marker=marker,
        config=config,
    )
