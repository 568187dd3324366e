"""Tests for CLI commands: cards, reviews, stats, storage maintenance and config."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from flashdeck.interface.cli import app

runner = CliRunner()


@pytest.fixture
def data_dir(tmp_path, mock_home):
    return tmp_path / "data"


def invoke(data_dir, *args, **kwargs):
    return runner.invoke(app, ["--data-dir", str(data_dir), *args], **kwargs)


def add_card(data_dir, source_id="m-1", *extra) -> str:
    result = invoke(data_dir, "add", source_id, *extra)
    assert result.exit_code == 0, result.output
    return result.stdout.strip()


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "spaced-repetition flashcards" in result.stdout
    assert "review" in result.stdout
    assert "health" in result.stdout


# --- Cards ---


def test_add_and_list_cards(data_dir):
    card_id = add_card(data_dir, "m-1", "--type", "milestone")
    assert card_id.startswith("card_")
    assert (data_dir / "flashdeck-cards.json").exists()

    result = invoke(data_dir, "cards")
    assert result.exit_code == 0
    assert card_id in result.stdout
    assert "milestone:m-1" in result.stdout
    assert "due=now" in result.stdout


def test_add_duplicate_fails(data_dir):
    add_card(data_dir, "c-1")
    result = invoke(data_dir, "add", "c-1")
    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_add_invalid_type(data_dir):
    result = invoke(data_dir, "add", "x", "--type", "video")
    assert result.exit_code == 2


def test_new_cards_join_default_packs(data_dir):
    add_card(data_dir, "c-1", "--pack", "pack_custom")
    result = invoke(data_dir, "cards", "--pack", "pack_custom")
    assert "concept:c-1" in result.stdout

    assert "No cards." in invoke(data_dir, "cards", "--pack", "pack_other").stdout


# --- Reviews ---


def test_review_schedules_card(data_dir):
    card_id = add_card(data_dir)

    result = invoke(data_dir, "review", card_id, "good", "--minutes", "2")
    assert result.exit_code == 0, result.output
    assert "Good: next review in 1 day" in result.stdout
    assert "Today: 1 review(s)" in result.stdout

    # No longer due
    assert "No cards." in invoke(data_dir, "cards", "--due").stdout

    saved = json.loads((data_dir / "flashdeck-history.json").read_text())
    assert saved[0]["goodCount"] == 1
    assert saved[0]["minutesStudied"] == 2
    assert not (data_dir / "flashdeck-journal.json").exists()


def test_review_accepts_numeric_rating(data_dir):
    card_id = add_card(data_dir)
    result = invoke(data_dir, "review", card_id, "0")
    assert result.exit_code == 0
    assert "Again: next review in 1 day" in result.stdout


def test_review_unknown_card(data_dir):
    result = invoke(data_dir, "review", "card_missing", "good")
    assert result.exit_code == 1


def test_review_bad_rating(data_dir):
    card_id = add_card(data_dir)
    result = invoke(data_dir, "review", card_id, "meh")
    assert result.exit_code == 2


def test_session_end(data_dir):
    result = invoke(data_dir, "session-end", "15")
    assert result.exit_code == 0
    assert "Studied 15 minute(s) today." in result.stdout


# --- Statistics ---


def test_stats_json(data_dir):
    card_id = add_card(data_dir)
    add_card(data_dir, "m-2")
    invoke(data_dir, "review", card_id, "easy")

    result = invoke(data_dir, "stats", "--json")
    assert result.exit_code == 0, result.output
    stats = json.loads(result.stdout)
    assert stats["totalCards"] == 2
    assert stats["newCards"] == 1
    assert stats["totalReviewsAllTime"] == 1
    assert stats["currentStreak"] == 1
    assert stats["retentionRate7d"] == 1
    assert (data_dir / "flashdeck-stats.json").exists()


def test_stats_text(data_dir):
    add_card(data_dir)
    result = invoke(data_dir, "stats")
    assert result.exit_code == 0
    assert "Cards: 1 total, 1 new" in result.stdout
    assert "Due: 1 today" in result.stdout


def test_streak(data_dir):
    assert "Start a streak today!" in invoke(data_dir, "streak").stdout

    card_id = add_card(data_dir)
    invoke(data_dir, "review", card_id, "good")
    result = invoke(data_dir, "streak")
    assert "Current streak: 1 day(s)" in result.stdout
    assert "Next milestone: 1 Week" in result.stdout


def test_forecast(data_dir):
    add_card(data_dir)
    result = invoke(data_dir, "forecast", "--days", "3")
    lines = result.stdout.strip().splitlines()
    assert len(lines) == 3
    assert lines[0].endswith("  1")
    assert lines[1].endswith("  0")


# --- Storage maintenance ---


def test_health_ok(data_dir):
    add_card(data_dir)
    result = invoke(data_dir, "health")
    assert result.exit_code == 0
    assert "Available: yes" in result.stdout


def test_health_reports_corruption(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "flashdeck-history.json").write_text("[{broken")

    result = invoke(data_dir, "health")
    assert result.exit_code == 1
    assert "Problem: Invalid JSON" in result.stdout
    assert "re-importing" in result.stdout


def test_recover_repairs_and_writes(data_dir):
    data_dir.mkdir(parents=True)
    history = data_dir / "flashdeck-history.json"
    history.write_text('[{"date": "2024-06-14", "totalReviews": 1},]')

    result = invoke(data_dir, "recover", "--write")
    assert result.exit_code == 0, result.output
    assert "flashdeck-history: Data was repaired automatically" in result.stdout
    assert json.loads(history.read_text()) == [{"date": "2024-06-14", "totalReviews": 1}]


def test_recover_fails_on_garbage(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "flashdeck-streak.json").write_text("%%%")

    result = invoke(data_dir, "recover")
    assert result.exit_code == 1
    assert "flashdeck-streak: Could not recover data" in result.stdout


def test_export_import_round_trip(data_dir, tmp_path):
    card_id = add_card(data_dir)
    invoke(data_dir, "review", card_id, "hard")
    export_file = tmp_path / "backup.json"

    result = invoke(data_dir, "export", str(export_file))
    assert result.exit_code == 0
    exported = json.loads(export_file.read_text())
    assert exported["cards"][0]["id"] == card_id

    other_dir = tmp_path / "other"
    result = invoke(other_dir, "import", str(export_file))
    assert result.exit_code == 0, result.output
    assert "Restored flashdeck-cards" in result.stdout
    assert card_id in invoke(other_dir, "cards").stdout


def test_export_to_stdout(data_dir):
    add_card(data_dir)
    result = invoke(data_dir, "export")
    assert json.loads(result.stdout)["version"] == 1


def test_import_rejects_invalid_file(data_dir, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"version": "x"}')
    result = invoke(data_dir, "import", str(bad))
    assert result.exit_code == 2


def test_clear_requires_confirmation(data_dir):
    add_card(data_dir)

    result = invoke(data_dir, "clear", input="n\n")
    assert result.exit_code == 1
    assert (data_dir / "flashdeck-cards.json").exists()

    result = invoke(data_dir, "clear", "--yes")
    assert result.exit_code == 0
    assert not (data_dir / "flashdeck-cards.json").exists()


def test_memory_backend_keeps_nothing(data_dir):
    result = invoke(data_dir, "--backend", "memory", "add", "c-1")
    assert result.exit_code == 0
    assert not data_dir.exists()

    assert "No cards." in invoke(data_dir, "--backend", "memory", "cards").stdout


# --- Config ---


def test_config_show(mock_home, monkeypatch):
    monkeypatch.setenv("FLASHDECK_FORECAST_DAYS", "10")
    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    output_data = json.loads(result.stdout)
    assert output_data["forecast_days"] == 10
    assert output_data["backend"] == "file"
    assert Path(output_data["data_dir"]) == (mock_home / ".local/share/flashdeck").resolve()


@patch("flashdeck.interface.cli.resolve_config")
def test_config_show_serializes_paths(mock_resolve_config):
    mock_config = MagicMock()
    mock_config.model_dump.return_value = {"data_dir": Path("/tmp/cards"), "backend": "memory"}
    mock_resolve_config.return_value = mock_config

    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"data_dir": str(Path("/tmp/cards")), "backend": "memory"}


def test_invalid_backend_exits(data_dir):
    result = invoke(data_dir, "--backend", "cloud", "cards")
    assert result.exit_code == 2
