"""Tests for the click command line."""

import json

import pytest
from click.testing import CliRunner

from stellar_av.cli import cli

from .security.helpers import sha256_of, write_file

BAD_BYTES = b"cli test payload"


@pytest.fixture
def run(config_file):
    runner = CliRunner()

    def _run(*args):
        return runner.invoke(cli, ["--config", str(config_file), *args])

    return _run


class TestScanCommands:
    def test_quick_scan_clean(self, run, user_dirs):
        write_file(user_dirs["downloads"] / "a.txt", b"a")
        result = run("scan", "quick")
        assert result.exit_code == 0, result.output
        assert "No threats found." in result.output

    def test_full_scan_reports_threat(self, run, user_dirs, tmp_path):
        bad = write_file(user_dirs["documents"] / "bad.exe", BAD_BYTES)
        db = tmp_path / "threats.json"
        db.write_text(json.dumps([{"sha256": sha256_of(BAD_BYTES), "name": "Trojan.Test"}]))

        assert run("db", "update", str(db)).exit_code == 0
        result = run("scan", "full")

        assert result.exit_code == 0, result.output
        assert "1 threat(s) found" in result.output
        assert f"Trojan.Test: {bad}" in result.output

        detections = run("db", "detections")
        assert str(bad) in detections.output

    def test_scan_failure_exits_nonzero(self, run, user_dirs, monkeypatch):
        from stellar_av.security.errors import ThreatIntelServerError
        from stellar_av.security.signature_cache import SignatureCache

        def boom(self, files):
            raise ThreatIntelServerError(503)

        monkeypatch.setattr(SignatureCache, "batch_lookup", boom)
        write_file(user_dirs["downloads"] / "a.txt", b"a")

        result = run("scan", "quick")
        assert result.exit_code != 0
        assert "could not verify" in result.output


class TestRealtimeCommands:
    def test_toggle_and_status(self, run):
        assert "enabled" in run("realtime", "status").output
        assert run("realtime", "off").exit_code == 0
        assert "disabled" in run("realtime", "status").output
        run("realtime", "on")
        assert "Realtime protection: enabled" in run("realtime", "status").output


class TestQuarantineCommands:
    def test_add_list_restore(self, run, user_dirs):
        src = write_file(user_dirs["downloads"] / "bad.exe", BAD_BYTES)

        assert "1 file(s) quarantined" in run("quarantine", "add", str(src)).output
        assert "bad.exe" in run("quarantine", "list").output

        result = run("quarantine", "restore", "bad.exe", str(src))
        assert result.exit_code == 0, result.output
        assert src.read_bytes() == BAD_BYTES
        assert "Quarantine is empty" in run("quarantine", "list").output

    def test_delete(self, run, user_dirs):
        src = write_file(user_dirs["downloads"] / "bad.exe", BAD_BYTES)
        run("quarantine", "add", str(src))
        assert "1 file(s) deleted" in run("quarantine", "delete", "bad.exe").output

    def test_delete_by_path(self, run, user_dirs):
        src = write_file(user_dirs["downloads"] / "bad.exe", BAD_BYTES)
        run("quarantine", "add", str(src))
        assert "1 file(s) deleted" in run("quarantine", "delete-by-path", str(src)).output

    def test_invalid_name_fails(self, run):
        result = run("quarantine", "delete", "../x")
        assert result.exit_code != 0
        assert "Invalid quarantine file name" in result.output


class TestDbCommands:
    def test_bad_json(self, run, tmp_path):
        db = tmp_path / "bad.json"
        db.write_text("{oops")
        result = run("db", "update", str(db))
        assert result.exit_code != 0

    def test_conflicting_ids_fail_cleanly(self, run, tmp_path):
        db = tmp_path / "dup.json"
        db.write_text(json.dumps([
            {"id": "dup", "sha256": "a" * 64, "name": "One"},
            {"id": "dup", "sha256": "b" * 64, "name": "Two"},
        ]))
        result = run("db", "update", str(db))
        assert result.exit_code != 0
        assert "Failed to store signatures" in result.output


class TestConfigCommands:
    def test_show(self, run, config_file):
        result = run("config", "show")
        assert result.exit_code == 0
        assert "threat_intel" in result.output
