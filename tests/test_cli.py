"""Tests for the ``python -m relstore`` entry point."""

import json
import sys
from pathlib import Path

import pytest

from relstore.__main__ import main


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("RELSTORE_FLUSH_DELAY", raising=False)


@pytest.fixture
def messages_file(tmp_path: Path) -> Path:
    path = tmp_path / "messages.json"
    path.write_text(
        json.dumps(
            [
                {"type": "user", "payload": [{"id": 1, "name": "John"}]},
                {"type": "user", "payload": {"2": {"name": "Jane"}, "1": {"name": "Johnny"}}},
                {"type": "cell", "payload": [{"cell_id": 7, "label": "A1"}]},
            ]
        )
    )
    return path


def run(monkeypatch, capsys, *args: str) -> dict:
    monkeypatch.setattr(sys, "argv", ["relstore", *args])
    main()
    return json.loads(capsys.readouterr().out)


class TestCli:
    def test_usage(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["relstore"])
        with pytest.raises(SystemExit) as excinfo:
            main()
        assert excinfo.value.code == 1
        assert "Usage" in capsys.readouterr().out

    def test_ingest_prints_stats(self, monkeypatch, capsys, messages_file: Path, tmp_path: Path):
        config = tmp_path / "relstore.toml"
        config.write_text('[types.user]\n\n[types.cell]\nid_field = "cell_id"\n')

        stats = run(monkeypatch, capsys, "ingest", str(messages_file), str(config))

        assert stats["user"]["count"] == 2
        assert sorted(stats["user"]["ids"]) == ["1", "2"]
        assert stats["cell"] == {"count": 1, "ids": ["7"]}

    def test_state_prints_records(self, monkeypatch, capsys, tmp_path: Path):
        path = tmp_path / "users.json"
        path.write_text(json.dumps({"type": "user", "payload": [{"id": 1, "name": "John"}]}))

        state = run(monkeypatch, capsys, "state", str(path))

        assert state == {"user": {"by_id": {"1": {"id": 1, "name": "John"}}, "all_ids": ["1"]}}

    def test_types_outside_config_are_skipped(
        self, monkeypatch, capsys, messages_file: Path, tmp_path: Path
    ):
        config = tmp_path / "relstore.toml"
        config.write_text("[types.user]\n")

        stats = run(monkeypatch, capsys, "ingest", str(messages_file), str(config))

        assert list(stats) == ["user"]
