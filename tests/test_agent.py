"""Tests for the agent's command handling."""

import json

import pytest

from stellar_av.agent import StellarAgent
from stellar_av.security.errors import InvalidQuarantineNameError, ThreatIntelServerError
from stellar_av.security.models import NOTIFICATION, SCAN_FINISHED
from stellar_av.security.signature_cache import SignatureCache
from stellar_av.security.threat_intel import ThreatIntelClient

from .security.helpers import StaticVerdictSource, sha256_of, write_file

BAD_BYTES = b"agent test payload"


@pytest.fixture
def agent(config_file):
    agent = StellarAgent(str(config_file))
    yield agent
    agent.close()


class TestWiring:
    def test_cache_is_verdict_source_when_remote_disabled(self, agent):
        assert isinstance(agent.verdict_source, SignatureCache)
        assert agent.scan_pipeline.verdict_source is agent.signature_cache

    def test_remote_client_when_enabled(self, tmp_path, user_dirs):
        path = tmp_path / "remote.yaml"
        path.write_text(f"agent:\n  data_dir: {tmp_path / 'data2'}\n")
        agent = StellarAgent(str(path))
        try:
            assert isinstance(agent.verdict_source, ThreatIntelClient)
        finally:
            agent.close()

    def test_quarantine_dir_under_data_dir(self, agent, tmp_path):
        assert agent.quarantine_store.root == tmp_path / "data" / "Quarantine"


class TestScans:
    @pytest.mark.asyncio
    async def test_quick_scan_finds_cached_signature(self, agent, user_dirs):
        bad = write_file(user_dirs["desktop"] / "bad.exe", BAD_BYTES)
        agent.update_threat_db(json.dumps([{"sha256": sha256_of(BAD_BYTES), "name": "Trojan.Test"}]))

        report = await agent.start_quick_scan()

        assert report.threats == [("Trojan.Test", str(bad))]
        finished = [e for e in agent.monitoring.get_events(name=SCAN_FINISHED)]
        assert finished[-1].payload["threats"] == [["Trojan.Test", str(bad)]]
        assert agent.get_detections()[0].path == str(bad)

    @pytest.mark.asyncio
    async def test_quick_scan_ignores_documents(self, agent, user_dirs):
        write_file(user_dirs["documents"] / "bad.exe", BAD_BYTES)
        agent.update_threat_db(json.dumps([{"sha256": sha256_of(BAD_BYTES), "name": "Trojan.Test"}]))

        assert (await agent.start_quick_scan()).threats == []
        assert len((await agent.start_full_scan()).threats) == 1

    @pytest.mark.asyncio
    async def test_max_bytes_override(self, agent, user_dirs):
        write_file(user_dirs["downloads"] / "big.bin", b"x" * 100)
        report = await agent.start_quick_scan(max_bytes=10)
        assert report.skipped_too_large == 1

    @pytest.mark.asyncio
    async def test_scan_failure_propagates(self, agent, user_dirs):
        write_file(user_dirs["downloads"] / "a.txt", b"a")
        agent.scan_pipeline.verdict_source = StaticVerdictSource(error=ThreatIntelServerError(503))

        with pytest.raises(ThreatIntelServerError):
            await agent.start_quick_scan()

        notes = agent.monitoring.get_events(name=NOTIFICATION)
        assert notes[-1].payload["body"] == "Quick scan failed – could not verify results."


class TestRealtimeFlag:
    def test_toggle_persists(self, agent, config_file):
        assert agent.get_realtime_enabled() is True
        agent.set_realtime_enabled(False)
        assert agent.realtime_monitor.enabled.is_set() is False

        reloaded = StellarAgent(str(config_file))
        try:
            assert reloaded.get_realtime_enabled() is False
        finally:
            reloaded.close()

    def test_background_hint_consumed_once(self, agent):
        assert agent.consume_background_hint() is True
        assert agent.consume_background_hint() is False


class TestQuarantineCommands:
    def test_quarantine_restore_round_trip(self, agent, user_dirs):
        src = write_file(user_dirs["downloads"] / "bad.exe", BAD_BYTES)

        agent.quarantine([str(src)])
        assert [i.name for i in agent.list_quarantine()] == ["bad.exe"]

        restored = agent.restore([{"fileName": "bad.exe", "originalPath": str(src)}])
        assert restored == [str(src)]
        assert src.read_bytes() == BAD_BYTES

    def test_delete_commands(self, agent, user_dirs):
        a = write_file(user_dirs["downloads"] / "a.exe", b"a")
        b = write_file(user_dirs["downloads"] / "b.exe", b"b")
        agent.quarantine([str(a), str(b)])

        assert agent.delete_quarantined(["a.exe"]) == 1
        assert agent.delete_by_original_path([str(b)]) == 1
        assert agent.list_quarantine() == []

    def test_invalid_name_rejected(self, agent):
        with pytest.raises(InvalidQuarantineNameError):
            agent.delete_quarantined(["../etc"])
