"""Test the command line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from plan_inspector.cli.main import collect_entries, events_frame, main
from plan_inspector.core.archive_processor import parse_file_content
from plan_inspector.utils.config import DEFAULT_CONFIG_DIR, config


SAMPLE_DIR = Path(__file__).parent / "sample_logs"
SAMPLE_LOG = SAMPLE_DIR / "forklift-controller.log"
SAMPLE_YAML = SAMPLE_DIR / "warm-plan.yaml"


@pytest.fixture(autouse=True)
def restore_config():
    """--config-dir repoints the shared configuration."""
    yield
    config.use_config_dir(DEFAULT_CONFIG_DIR)


def test_json_output_single_file():
    """Test JSON output for one controller log."""
    result = CliRunner().invoke(main, [str(SAMPLE_LOG), "-f", "json"])
    assert result.exit_code == 0

    data = json.loads(result.output)
    assert data["stats"]["totalLines"] == 24
    assert [p["name"] for p in data["plans"]] == ["warm-plan", "cold-plan"]


def test_json_output_directory():
    """Test that a directory is dispatched as archive members."""
    result = CliRunner().invoke(main, [str(SAMPLE_DIR), "-f", "json"])
    assert result.exit_code == 0

    data = json.loads(result.output)
    assert data["logFiles"] == ["forklift-controller.log"]
    assert data["yamlFiles"] == ["warm-plan.yaml"]
    plan = data["parsedData"]["plans"][0]
    assert plan["spec"]["description"] == "Nightly warm migration"


def test_human_output():
    """Test the rich summary tables."""
    result = CliRunner().invoke(main, [str(SAMPLE_LOG), str(SAMPLE_YAML), "--events"])
    assert result.exit_code == 0
    assert "Migration plans" in result.output
    assert "Event timeline" in result.output
    assert "Skipped" not in result.output


def test_missing_paths():
    """Test that running without paths fails."""
    result = CliRunner().invoke(main, [])
    assert result.exit_code == 1


def test_test_config():
    """Test the configuration check."""
    result = CliRunner().invoke(main, ["--test-config"])
    assert result.exit_code == 0
    assert "forklift.konveyor.io" in result.output


def test_test_config_bad_dir(tmp_path):
    """Test the configuration check against a directory without config."""
    result = CliRunner().invoke(main, ["--test-config", "--config-dir", str(tmp_path)])
    assert result.exit_code == 1


def test_empty_directory_fails(tmp_path):
    """Test that a directory with no files is reported."""
    result = CliRunner().invoke(main, [str(tmp_path)])
    assert result.exit_code == 1


def test_collect_entries_relative_paths(tmp_path):
    """Test that directory members keep their relative paths."""
    nested = tmp_path / "namespaces" / "demo"
    nested.mkdir(parents=True)
    (nested / "a.log").write_text("x")
    entries = collect_entries([str(tmp_path)])
    assert [e.path for e in entries] == ["namespaces/demo/a.log"]


def test_events_frame_sorted():
    """Test the event DataFrame."""
    frame = events_frame(parse_file_content(SAMPLE_LOG.read_text()))
    assert len(frame) == 12
    assert list(frame["timestamp"]) == sorted(frame["timestamp"])
    assert "vmName" in frame.columns
