"""Tests for the CLI entry point."""

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from pnm.cli import main

PUBKEY_A = "8Xq7mVrP3nTz2aWb5cYd9eUf4gRh6iSj1kLm"
PUBKEY_B = "Fz9yHx8wGv7uEt6sDr5qCp4oBn3mAl2kZj1i"

SNAPSHOT = [
    {
        "pubkey": PUBKEY_A,
        "status": "online",
        "version": "0.8.0",
        "uptime": 30,
        "storageCommitted": 100,
        "storageTotal": 100,
        "storageUsed": 40,
        "isPublic": True,
        "address": "1.1.1.1:9001",
    },
    {
        "pubkey": PUBKEY_B,
        "status": "online",
        "version": "0.7.0",
        "uptime": 15,
        "storageCommitted": 50,
        "storageTotal": 100,
        "storageUsed": 10,
        "isPublic": False,
        "address": "2.2.2.2:9001",
    },
]


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a real ~/.pnm/config.yaml from leaking into the tests."""
    monkeypatch.setattr("pnm.config.DEFAULT_CONFIG_PATH", tmp_path / "nope.yaml")


@pytest.fixture
def snapshot(tmp_path: Path) -> Path:
    path = tmp_path / "pnodes.json"
    path.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
    return path


class TestCliHelp:
    """--help flag produces usage information."""

    def test_help_exits_zero(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "pNode telemetry" in result.output

    def test_help_lists_commands(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])
        for command in ("summary", "export", "check", "map"):
            assert command in result.output

    def test_help_shows_config_option(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])
        assert "--config" in result.output


class TestConfigOption:
    """--config flag validation."""

    def test_missing_config_file_errors(self, tmp_path: Path, snapshot: Path) -> None:
        runner = CliRunner()
        missing = str(tmp_path / "nonexistent.yaml")
        result = runner.invoke(main, ["--config", missing, "summary", "-s", str(snapshot)])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_yaml_errors(self, tmp_path: Path, snapshot: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(": : : bad yaml\n")
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(cfg_file), "summary", "-s", str(snapshot)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_wrongly_typed_setting_errors(self, tmp_path: Path, snapshot: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text('map_batch_size: "x"\n')
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(cfg_file), "summary", "-s", str(snapshot)])
        assert result.exit_code == 1
        assert "map_batch_size" in result.output

    def test_snapshot_path_from_config(self, tmp_path: Path, snapshot: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(f"snapshot_path: {snapshot}\n")
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(cfg_file), "summary", "-f", "json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["networkStats"]["totalNodes"] == 2


class TestSummary:
    def test_table(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["summary", "-s", str(snapshot)])
        assert result.exit_code == 0
        assert "Network overview" in result.output
        assert "Leaderboard" in result.output

    def test_json(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["summary", "-s", str(snapshot), "--format", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [n["pubkey"] for n in data["rankedNodes"]] == [PUBKEY_A, PUBKEY_B]
        assert data["networkStats"]["latestVersion"] == "0.8.0"

    def test_missing_snapshot(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["summary", "-s", str(tmp_path / "absent.json")])
        assert result.exit_code == 1
        assert "Cannot read snapshot" in result.output

    def test_invalid_format_rejected(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["summary", "-s", str(snapshot), "-f", "xml"])
        assert result.exit_code != 0
        assert "Invalid value" in result.output


class TestExport:
    def test_csv_to_file(self, tmp_path: Path, snapshot: Path) -> None:
        out = tmp_path / "nodes.csv"
        runner = CliRunner()
        result = runner.invoke(main, ["export", "-s", str(snapshot), "-o", str(out)])
        assert result.exit_code == 0
        assert f"Exported 2 nodes to {out}" in result.output

        lines = out.read_text(encoding="utf-8").splitlines()
        assert lines[0].startswith("Rank,Pubkey,Status,Health Score")
        assert lines[1].startswith(f"1,{PUBKEY_A},online,100")

    def test_json_to_stdout(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["export", "-s", str(snapshot), "-f", "json", "-C", "pubkey", "-C", "rank",
             "--include-stats", "-o", "-"],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["totalNodes"] == 2
        assert data["networkStats"]["onlineNodes"] == 2
        assert data["nodes"][0] == {"pubkey": PUBKEY_A, "rank": 1}

    def test_filters_apply(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["export", "-s", str(snapshot), "-C", "pubkey", "--no-header",
             "--max-health", "90", "-o", "-"],
        )
        assert result.exit_code == 0
        assert result.output.strip() == PUBKEY_B

    def test_all_columns(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["export", "-s", str(snapshot), "--all-columns", "-o", "-"])
        assert result.exit_code == 0
        assert "Percentile" in result.output.splitlines()[0]

    def test_nothing_to_export_warns(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["export", "-s", str(snapshot), "--status", "offline"])
        assert result.exit_code == 0
        assert "Warning: There are no nodes to export." in result.output

    def test_unknown_column_rejected(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["export", "-s", str(snapshot), "-C", "bogus"])
        assert result.exit_code != 0
        assert "Invalid value" in result.output


class TestCheck:
    def test_csv_preview(self, tmp_path: Path) -> None:
        path = tmp_path / "import.csv"
        path.write_text(f"pubkey,status\n{PUBKEY_A},online\n,offline\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(path), "-f", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["totalRows"] == 2
        assert data["validRows"] == 1
        assert data["invalidRows"] == 1
        assert data["errors"][0]["field"] == "pubkey"
        assert data["importable"] == 1

    def test_table_preview(self, tmp_path: Path) -> None:
        path = tmp_path / "import.json"
        path.write_text(json.dumps({"nodes": SNAPSHOT}), encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(path)])
        assert result.exit_code == 0
        assert "2 rows, 2 valid, 0 invalid" in result.output

    def test_unknown_format(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("hello there", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(path)])
        assert result.exit_code == 1
        assert "Unable to detect file format" in result.output

    def test_forced_type(self, tmp_path: Path) -> None:
        path = tmp_path / "import.txt"
        path.write_text(f"pubkey\n{PUBKEY_A}", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(path), "--type", "csv", "-f", "json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["errors"][0]["field"] == "status"


class TestMap:
    def test_requires_database(self, snapshot: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["map", "-s", str(snapshot)])
        assert result.exit_code == 1
        assert "maxmind_city_db is not configured" in result.output

    def test_unreadable_database(self, tmp_path: Path, snapshot: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(f"maxmind_city_db: {tmp_path / 'missing.mmdb'}\n")
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(cfg_file), "map", "-s", str(snapshot)])
        assert result.exit_code == 1
        assert "cannot open" in result.output

    @patch("pnm.geoip.geoip2.database.Reader")
    def test_projects_nodes(
        self, mock_reader_cls: MagicMock, tmp_path: Path, snapshot: Path
    ) -> None:
        mock_instance = MagicMock()
        mock_instance.city.return_value = SimpleNamespace(
            city=SimpleNamespace(name="Frankfurt"),
            country=SimpleNamespace(name="Germany"),
            subdivisions=SimpleNamespace(most_specific=SimpleNamespace(name="Hesse")),
            location=SimpleNamespace(latitude=50.11, longitude=8.68),
        )
        mock_reader_cls.return_value = mock_instance

        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("maxmind_city_db: /fake/City.mmdb\n")
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["--config", str(cfg_file), "map", "-s", str(snapshot), "--min-health", "95",
             "-f", "json"],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [n["pubkey"] for n in data] == [PUBKEY_A]
        assert data[0]["city"] == "Frankfurt"
        mock_instance.close.assert_called_once()
