"""Tests for the workunits command line."""

import json
import logging

import pytest
import yaml

from workunits.__main__ import build_parser, main


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path):
    (tmp_path / "catalog.yaml").write_text(
        yaml.safe_dump(
            {
                "datasets": [
                    {
                        "database": "sales",
                        "table": "orders",
                        "partition_columns": ["dt"],
                        "partitions": [
                            {"values": ["1"], "parameters": {"last_modified_time": 1000}},
                            {"values": ["2"], "parameters": {"last_modified_time": 2000}},
                        ],
                    },
                    {
                        "database": "sales",
                        "table": "customers",
                        "parameters": {"last_modified_time": 3000},
                    },
                ]
            }
        ),
        encoding="utf-8",
    )
    path = tmp_path / "discovery.yaml"
    path.write_text(
        "catalog:\n"
        "  type: yaml\n"
        "  path: catalog.yaml\n"
        "update_provider:\n"
        "  type: metadata\n"
        "watermarks:\n"
        "  local_path: state\n",
        encoding="utf-8",
    )
    return path


class TestParser:
    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_global_flags(self):
        args = build_parser().parse_args(["-v", "--json-log", "watermarks", "c.yaml"])
        assert args.verbose
        assert args.json_log
        assert args.command == "watermarks"


class TestDiscoverCommand:
    def test_prints_work_units(self, config_path, capsys):
        assert main(["discover", str(config_path)]) == 0

        work_units = json.loads(capsys.readouterr().out)
        assert [wu["dataset.urn"] for wu in work_units] == [
            "sales@orders",
            "sales@orders",
            "sales@customers",
        ]
        assert work_units[0]["partitions.name"] == "dt=1"
        assert {wu["watermark.low"] for wu in work_units} == {0}
        assert len({wu["watermark.expected_high"] for wu in work_units}) == 1

    def test_summary_to_file(self, config_path, tmp_path):
        output = tmp_path / "wu.json"

        assert main(["discover", str(config_path), "-o", str(output), "--summary"]) == 0

        data = json.loads(output.read_text())
        assert data["run_id"]
        assert len(data["work_units"]) == 3
        assert data["summary"]["counters"]["datasets"] == 2

    def test_configuration_error_exit_code(self, tmp_path, capsys):
        assert main(["discover", str(tmp_path / "missing.yaml")]) == 1
        assert "Cannot read config file" in capsys.readouterr().err


class TestCommitCommand:
    def test_commit_advances_watermarks(self, config_path, tmp_path, capsys):
        output = tmp_path / "wu.json"
        main(["discover", str(config_path), "-o", str(output), "--summary"])
        capsys.readouterr()

        assert main(["commit", str(config_path), str(output)]) == 0
        assert "Committed 3 watermark(s)" in capsys.readouterr().out

        assert main(["discover", str(config_path)]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_commit_accepts_plain_list(self, config_path, tmp_path, capsys):
        output = tmp_path / "wu.json"
        main(["discover", str(config_path), "-o", str(output)])

        assert main(["commit", str(config_path), str(output)]) == 0
        assert "Committed 3 watermark(s)" in capsys.readouterr().out

    def test_unreadable_work_units(self, config_path, tmp_path, capsys):
        assert main(["commit", str(config_path), str(tmp_path / "none.json")]) == 1
        assert "cannot read work units" in capsys.readouterr().err

    def test_malformed_work_unit(self, config_path, tmp_path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps([{"dataset.urn": "sales@orders"}]))

        assert main(["commit", str(config_path), str(bad)]) == 1
        assert "malformed work unit" in capsys.readouterr().err


class TestWatermarksCommand:
    def test_empty(self, config_path, capsys):
        assert main(["watermarks", str(config_path)]) == 0
        assert "No watermarks stored." in capsys.readouterr().out

    def test_lists_committed(self, config_path, tmp_path, capsys):
        output = tmp_path / "wu.json"
        main(["discover", str(config_path), "-o", str(output)])
        main(["commit", str(config_path), str(output)])
        capsys.readouterr()

        assert main(["watermarks", str(config_path)]) == 0
        out = capsys.readouterr().out
        assert "sales@customers" in out
        assert "sales@orders@dt=1" in out

    def test_corrupt_record_reports_error(self, config_path, tmp_path, capsys):
        state = tmp_path / "state"
        state.mkdir()
        (state / "sales%40orders_watermark.json").write_text("{not json")

        assert main(["watermarks", str(config_path)]) == 1
        assert "Corrupt watermark record" in capsys.readouterr().err
