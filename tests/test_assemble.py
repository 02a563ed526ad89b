"""Integration tests for container assembly and the command line."""

import zipfile
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image
from typer.testing import CliRunner

from stagepack.assemble import (
    assemble_container,
    build_stage,
    build_substitutions,
)
from stagepack.cli import app
from stagepack.config import StageConfig
from stagepack.errors import ConfigError, NotFoundError
from stagepack.variant import TemplateDescriptor, Variant
from utils.validation import validate_container

runner = CliRunner()

STAGE_X = b"#usda 1.0\ndef Xform \"Poster\" {}\n"
POSTER_Y = b"template poster"


def png_bytes(color=(255, 0, 0), size=(8, 8)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, "PNG")
    return buffer.getvalue()


def make_template(path: Path, stage_name: str = "root.stage") -> Path:
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("textures/poster.png", POSTER_Y)
        zf.writestr(stage_name, STAGE_X)
    return path


def root_descriptor() -> TemplateDescriptor:
    return TemplateDescriptor(
        archive_filename="template.usdz",
        stage_entry_name="root.stage",
        variant=Variant.A,
    )


class TestAssembly:
    """End-to-end assembly scenarios."""

    def test_end_to_end_poster_swap(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        poster_z = png_bytes()
        destination = tmp_path / "out" / "result.usdz"

        result = assemble_container(
            template,
            {"textures/poster.png": poster_z},
            root_descriptor(),
            destination,
            config=StageConfig(directory_entries=False),
        )

        assert result.container_path == destination
        assert result.substituted == ["textures/poster.png"]
        with zipfile.ZipFile(destination) as zf:
            infos = zf.infolist()
            assert [i.filename for i in infos] == ["root.stage", "textures/poster.png"]
            assert all(i.compress_type == zipfile.ZIP_STORED for i in infos)
            assert zf.read("root.stage") == STAGE_X
            assert zf.read("textures/poster.png") == poster_z

    def test_end_to_end_with_directory_entries(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        poster_z = png_bytes((0, 0, 255))
        destination = tmp_path / "result.usdz"

        assemble_container(template, {"textures/poster.png": poster_z}, root_descriptor(), destination)

        with zipfile.ZipFile(destination) as zf:
            names = zf.namelist()
            files = [n for n in names if not n.endswith("/")]
            assert names == ["root.stage", "textures/", "textures/poster.png"]
            assert files == ["root.stage", "textures/poster.png"]
            assert zf.read("textures/poster.png") == poster_z
        assert validate_container(destination, stage_entry_name="root.stage") == []

    def test_template_directory_and_marker(self, tmp_path):
        templates = tmp_path / "templates"
        templates.mkdir()
        make_template(templates / "template.usdz")
        destination = tmp_path / "result.usdz"

        result = assemble_container(
            templates,
            {"textures/poster.png": png_bytes()},
            root_descriptor(),
            destination,
            marker="1700000000000",
        )

        assert "version.txt" in result.substituted
        with zipfile.ZipFile(destination) as zf:
            assert zf.namelist()[0] == "root.stage"
            assert zf.read("version.txt") == b"1700000000000"

    def test_marker_disabled_by_config(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        destination = tmp_path / "result.usdz"

        assemble_container(
            template, {}, root_descriptor(), destination,
            marker="123", config=StageConfig(marker_name=None),
        )

        with zipfile.ZipFile(destination) as zf:
            assert "version.txt" not in zf.namelist()

    def test_missing_template(self, tmp_path):
        destination = tmp_path / "result.usdz"
        with pytest.raises(NotFoundError):
            assemble_container(tmp_path / "missing.usdz", {}, root_descriptor(), destination)
        assert not destination.exists()

    def test_stats_recorded(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        result = assemble_container(template, {}, root_descriptor(), tmp_path / "r.usdz")

        stats = result.stats
        assert stats.template_entries == 3
        assert stats.template_bytes == len(STAGE_X) + len(POSTER_Y)
        assert stats.substituted_bytes == 0
        assert stats.container_bytes == (tmp_path / "r.usdz").stat().st_size
        assert stats.total_seconds >= stats.write_seconds >= 0

    def test_stats_count_substituted_bytes(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        result = assemble_container(
            template, {"textures/poster.png": b"z" * 100}, root_descriptor(),
            tmp_path / "r.usdz", marker="42",
        )

        assert result.stats.substituted_bytes == 102


class TestBuildStage:
    """Select -> assemble for a whole request."""

    def test_build_stage_picks_template_by_labels(self, tmp_path):
        make_template(tmp_path / "template_portrait.usdz", "poster_portrait.usda")
        make_template(tmp_path / "template_landscape.usdz", "poster_landscape.usda")
        destination = tmp_path / "out.usdz"

        result = build_stage(["person", "face", "room"], tmp_path, [png_bytes()], destination)

        assert result.descriptor.variant == Variant.A
        with zipfile.ZipFile(destination) as zf:
            assert zf.namelist()[0] == "poster_portrait.usda"

    def test_too_many_images(self):
        with pytest.raises(ConfigError):
            build_substitutions([b"one", b"two"])

    def test_substitutions_follow_targets(self):
        config = StageConfig(texture_targets=["textures/front.png", "textures/back.png"])
        assert build_substitutions([b"f", None], config) == {
            "textures/front.png": b"f",
            "textures/back.png": None,
        }


class TestCli:
    """Tests for the stagepack command line."""

    def test_assemble_and_validate(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        poster = tmp_path / "poster.png"
        poster.write_bytes(png_bytes())
        destination = tmp_path / "out.usdz"

        result = runner.invoke(app, [
            "assemble", str(template), str(destination),
            "--replace", f"textures/poster.png={poster}",
            "--stage", "root.stage",
            "--no-marker",
        ])

        assert result.exit_code == 0, result.output
        with zipfile.ZipFile(destination) as zf:
            assert zf.read("textures/poster.png") == poster.read_bytes()

        result = runner.invoke(app, ["validate", str(destination), "--stage", "root.stage"])
        assert result.exit_code == 0, result.output

    def test_validate_rejects_compressed(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")

        result = runner.invoke(app, ["validate", str(template), "--stage", "root.stage"])

        assert result.exit_code == 1
        assert "compressed" in result.output

    def test_missing_template_exit_code(self, tmp_path):
        result = runner.invoke(app, [
            "assemble", str(tmp_path / "missing.usdz"), str(tmp_path / "out.usdz"),
            "--stage", "root.stage",
        ])
        assert result.exit_code == 2

    def test_missing_stage_exit_code(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        result = runner.invoke(app, [
            "assemble", str(template), str(tmp_path / "out.usdz"),
            "--stage", "nope.usda",
        ])
        assert result.exit_code == 4
        assert not (tmp_path / "out.usdz").exists()

    def test_malformed_template_exit_code(self, tmp_path):
        bogus = tmp_path / "bogus.usdz"
        bogus.write_bytes(b"definitely not a zip")
        result = runner.invoke(app, [
            "assemble", str(bogus), str(tmp_path / "out.usdz"), "--stage", "root.stage",
        ])
        assert result.exit_code == 3

    def test_corrupt_template_entry_exit_code(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        with zipfile.ZipFile(template) as zf:
            info = zf.getinfo("root.stage")
        raw = bytearray(template.read_bytes())
        name_len = int.from_bytes(raw[info.header_offset + 26:info.header_offset + 28], "little")
        extra_len = int.from_bytes(raw[info.header_offset + 28:info.header_offset + 30], "little")
        raw[info.header_offset + 30 + name_len + extra_len] = 0xFF
        template.write_bytes(bytes(raw))

        result = runner.invoke(app, [
            "assemble", str(template), str(tmp_path / "out.usdz"), "--stage", "root.stage",
        ])

        assert result.exit_code == 3
        assert not (tmp_path / "out.usdz").exists()

    def test_select(self):
        result = runner.invoke(app, ["select", "landscape", "Building"])
        assert result.exit_code == 0
        assert "Variant: B" in result.output

    def test_inspect(self, tmp_path):
        template = make_template(tmp_path / "template.usdz")
        result = runner.invoke(app, ["inspect", str(template)])
        assert result.exit_code == 0
        assert "root.stage" in result.output
