"""Tests for the plumage CLI.

Commands restore patterns from a file-backed store seeded by a real learner,
so these exercise the CLI end to end.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from plumage import __version__
from plumage.cli import app
from plumage.core.config import EngineConfig, PersistenceConfig, StorageConfig
from plumage.learning import PatternLearner
from plumage.storage import LocalFileStorage

from tests.helpers import make_annotation

runner = CliRunner()

SPECIES = "Cardenal Rojo"


async def _seed(root: Path) -> None:
    config = EngineConfig(
        storage=StorageConfig(backend="file", file_root=root),
        persistence=PersistenceConfig(background=False),
    )
    learner = PatternLearner(storage=LocalFileStorage(root), config=config)
    for _ in range(6):
        await learner.learn_from_annotations(
            [make_annotation("el pico", box=(0.4, 0.2, 0.1, 0.1))],
            species=SPECIES,
            prompt="Find the beak",
        )
    await learner.learn_from_annotations([make_annotation("el ala")], species=SPECIES)
    for _ in range(3):
        await learner.learn_from_correction(
            make_annotation("el pico", box=(0.4, 0.2, 0.1, 0.1)),
            make_annotation("el pico", box=(0.4, 0.3, 0.1, 0.1)),
            species=SPECIES,
        )
    await learner.close()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """YAML config pointing at a seeded file store."""
    root = tmp_path / "store"
    asyncio.run(_seed(root))
    path = tmp_path / "plumage.yaml"
    path.write_text(f"storage:\n  backend: file\n  file_root: {root}\n")
    return path


@pytest.fixture
def empty_config_file(tmp_path: Path) -> Path:
    path = tmp_path / "empty.yaml"
    path.write_text(f"storage:\n  backend: file\n  file_root: {tmp_path / 'nothing'}\n")
    return path


# ─── Global options ──────────────────────────────────────────────────


class TestGlobalOptions:
    """Tests for app-level options."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"Plumage v{__version__}" in result.stdout

    def test_invalid_config_exits_with_error(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("learning:\n  confidence_threshold: 7\n")

        result = runner.invoke(app, ["stats", "--config", str(path)])

        assert result.exit_code == 1
        assert "Error loading config" in result.stdout

    def test_missing_config_file_rejected(self, tmp_path: Path):
        result = runner.invoke(app, ["stats", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 2


# ─── stats ───────────────────────────────────────────────────────────


class TestStatsCommand:
    """Tests for the stats command."""

    def test_stats_json(self, config_file: Path):
        result = runner.invoke(app, ["stats", "--config", str(config_file), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["totalPatterns"] == 2
        assert data["speciesTracked"] == 1
        top = data["topFeatures"][0]
        assert (top["feature"], top["observations"]) == ("pico", 9)
        assert 0.0 < top["confidence"] <= 1.0

    def test_stats_human_output(self, config_file: Path):
        result = runner.invoke(app, ["stats", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Learned Pattern Statistics" in result.stdout
        assert "pico" in result.stdout
        assert SPECIES in result.stdout

    def test_stats_empty_store(self, empty_config_file: Path):
        result = runner.invoke(app, ["stats", "--config", str(empty_config_file)])

        assert result.exit_code == 0
        assert "No patterns learned yet" in result.stdout


# ─── export ──────────────────────────────────────────────────────────


class TestExportCommand:
    """Tests for the export command."""

    def test_export_to_stdout(self, config_file: Path):
        result = runner.invoke(app, ["export", "--config", str(config_file)])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data["patterns"]) == 2
        assert data["speciesStats"][0]["species"] == SPECIES

    def test_export_to_file(self, config_file: Path, tmp_path: Path):
        output = tmp_path / "backup" / "patterns.json"
        result = runner.invoke(app, ["export", "--config", str(config_file), "--output", str(output), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"output": str(output), "patterns": 2}
        assert len(json.loads(output.read_text())["patterns"]) == 2


# ─── recommend ───────────────────────────────────────────────────────


class TestRecommendCommand:
    """Tests for the recommend command."""

    def test_recommend_json(self, config_file: Path):
        result = runner.invoke(app, ["recommend", SPECIES, "--config", str(config_file), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"species": SPECIES, "features": ["pico", "ala"]}

    def test_recommend_limit(self, config_file: Path):
        result = runner.invoke(app, ["recommend", SPECIES, "--limit", "1", "--config", str(config_file), "--json"])
        assert json.loads(result.stdout)["features"] == ["pico"]

    def test_recommend_unknown_species(self, config_file: Path):
        result = runner.invoke(app, ["recommend", "Unknown Species", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "No learned features" in result.stdout

    def test_negative_limit_rejected(self, config_file: Path):
        result = runner.invoke(app, ["recommend", SPECIES, "--limit", "-1", "--config", str(config_file)])
        assert result.exit_code == 2


# ─── adjustments ─────────────────────────────────────────────────────


class TestAdjustmentsCommand:
    """Tests for the adjustments command."""

    def test_adjustments_json(self, config_file: Path):
        result = runner.invoke(
            app, ["adjustments", SPECIES, "el pico", "la cola", "--config", str(config_file), "--json"]
        )

        assert result.exit_code == 0
        features = json.loads(result.stdout)["features"]
        assert features[0]["feature"] == "el pico"
        assert features[0]["basedOnCorrections"] == 3
        assert features[0]["adjustedBoundingBox"]["dy"] == pytest.approx(0.1)
        assert features[1] == {"feature": "la cola", "adjustedBoundingBox": None, "basedOnCorrections": 0}

    def test_adjustments_table(self, config_file: Path):
        result = runner.invoke(app, ["adjustments", SPECIES, "pico", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Position Adjustments" in result.stdout
        assert "0.10" in result.stdout


# ─── enhance ─────────────────────────────────────────────────────────


class TestEnhanceCommand:
    """Tests for the enhance command."""

    def test_enhance_prints_prompt(self, config_file: Path):
        result = runner.invoke(
            app,
            ["enhance", SPECIES, "Annotate this bird.", "--feature", "el pico", "--config", str(config_file)],
        )

        assert result.exit_code == 0
        assert "Annotate this bird.\n\nLEARNED FEATURE PATTERNS:" in result.stdout
        assert "[Based on 3 user corrections]" in result.stdout

    def test_enhance_json_unchanged_without_features(self, config_file: Path):
        result = runner.invoke(app, ["enhance", SPECIES, "Annotate this bird.", "--config", str(config_file), "--json"])

        data = json.loads(result.stdout)
        assert data["prompt"] == "Annotate this bird."
        assert data["enhanced"] is False


# ─── evaluate ────────────────────────────────────────────────────────


class TestEvaluateCommand:
    """Tests for the evaluate command."""

    def test_evaluate_json(self, config_file: Path):
        annotation = json.dumps(make_annotation("el pico", box=(0.4, 0.2, 0.1, 0.1)))
        result = runner.invoke(app, ["evaluate", SPECIES, annotation, "--config", str(config_file), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert set(data) == {"confidence", "boundingBoxQuality", "promptEffectiveness", "overallQuality"}
        assert all(0.0 <= v <= 1.0 for v in data.values())

    def test_evaluate_invalid_json(self, config_file: Path):
        result = runner.invoke(app, ["evaluate", SPECIES, "{not json", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Invalid annotation JSON" in result.stdout

    def test_evaluate_invalid_annotation(self, config_file: Path):
        result = runner.invoke(app, ["evaluate", SPECIES, '{"spanishTerm": ""}', "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Invalid annotation" in result.stdout
