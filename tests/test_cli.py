"""CLI smoke tests."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from dex_collector.cli.app import app
from dex_collector.storage.database import Database
from dex_collector.storage.repositories import MachineRepo
from tests.conftest import SAMPLE_DEX, feed_row, write_feed

runner = CliRunner()


def _dex_file(tmp_path):
    path = tmp_path / "report.txt"
    path.write_bytes(SAMPLE_DEX.encode("utf-8"))
    return str(path)


class TestDecodeCommand:
    """Test the decode command views."""

    def test_summary(self, tmp_path):
        result = runner.invoke(app, ["decode", _dex_file(tmp_path)])
        assert result.exit_code == 0
        assert "1661.10" in result.output

    def test_json_view(self, tmp_path):
        result = runner.invoke(app, ["decode", _dex_file(tmp_path), "--view", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["key_value"]["pa1_selection_10_price"] == "3.60"

    def test_structured_view(self, tmp_path):
        result = runner.invoke(app, ["decode", _dex_file(tmp_path), "--view", "structured"])
        assert result.exit_code == 0
        assert json.loads(result.output)["ZZ9"] == {"1": "FOO", "2": "BAR"}

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["decode", str(tmp_path / "nope.txt")])
        assert result.exit_code == 1

    def test_bad_view(self, tmp_path):
        result = runner.invoke(app, ["decode", _dex_file(tmp_path), "--view", "xml"])
        assert result.exit_code == 1


class TestCollectionCommands:
    """Test register, collect, status, errors and action together."""

    def test_end_to_end(self, tmp_path):
        db_path = str(tmp_path / "cli.duckdb")
        feed_dir = tmp_path / "feed"
        write_feed(feed_dir, [feed_row("101", "S1", "2025-09-30T12:00:00Z")], {"101": SAMPLE_DEX})

        result = runner.invoke(
            app, ["register", "S1", "--company", "c1", "--machine-id", "m1", "--db-path", db_path]
        )
        assert result.exit_code == 0

        result = runner.invoke(
            app, ["collect", str(feed_dir), "--company", "c1", "--no-delay", "--db-path", db_path]
        )
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["status", "--db-path", db_path])
        assert result.exit_code == 0
        assert "m1" in result.output

        result = runner.invoke(app, ["errors", "m1", "--db-path", db_path])
        assert result.exit_code == 0
        assert "UA09" in result.output

        result = runner.invoke(
            app, ["action", "m1", "egs", "2025-09-30T12:37:00", "--db-path", db_path]
        )
        assert result.exit_code == 0, result.output

        with Database(db_path) as db:
            errors = {e.code: e for e in MachineRepo(db).errors("m1")}
        assert errors["EGS"].actioned is True
        assert errors["UA09"].actioned is False

    def test_action_unknown_error(self, tmp_path):
        db_path = str(tmp_path / "cli.duckdb")
        runner.invoke(app, ["register", "S1", "--company", "c1", "--db-path", db_path])
        result = runner.invoke(app, ["action", "S1", "EGS", "2025-01-01T00:00:00", "--db-path", db_path])
        assert result.exit_code == 1

    def test_errors_unknown_machine(self, tmp_path):
        result = runner.invoke(app, ["errors", "nope", "--db-path", str(tmp_path / "cli.duckdb")])
        assert result.exit_code == 1

    def test_collect_requires_feed(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DEX_FEED_DIR", raising=False)
        result = runner.invoke(app, ["collect", "--db-path", str(tmp_path / "cli.duckdb")])
        assert result.exit_code == 1
