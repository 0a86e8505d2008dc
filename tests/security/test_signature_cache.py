"""Tests for the SQLite signature cache and detections log."""

import json

import pytest

from stellar_av.security.errors import SignatureCacheError
from stellar_av.security.models import (
    DetectionSource,
    ThreatApiFile,
    ThreatSignature,
)
from stellar_av.security.signature_cache import SignatureCache

HASH_A = "a" * 64
HASH_B = "b" * 64


def _sig(fingerprint=HASH_A, name="Trojan.Test", **kwargs) -> ThreatSignature:
    return ThreatSignature(id=kwargs.pop("id", "sig-1"), fingerprint=fingerprint, name=name, **kwargs)


class TestSignatures:
    def test_upsert_and_lookup(self, signature_cache):
        assert signature_cache.upsert_signatures([_sig(platforms=["windows"])]) == 1

        found = signature_cache.lookup(HASH_A)
        assert found.name == "Trojan.Test"
        assert found.platforms == ["windows"]

    def test_lookup_is_case_insensitive(self, signature_cache):
        signature_cache.upsert_signatures([_sig(fingerprint=HASH_A.upper())])
        assert signature_cache.lookup(HASH_A) is not None
        assert signature_cache.lookup(HASH_A.upper()) is not None

    def test_upsert_is_idempotent_last_write_wins(self, signature_cache):
        signature_cache.upsert_signatures([_sig(name="Old.Name", severity="low")])
        signature_cache.upsert_signatures([_sig(id="sig-2", name="New.Name", severity="high")])

        assert signature_cache.count_signatures() == 1
        found = signature_cache.lookup(HASH_A)
        assert found.name == "New.Name"
        assert found.severity == "high"
        assert found.id == "sig-1"

    def test_unknown_fingerprint(self, signature_cache):
        assert signature_cache.lookup(HASH_B) is None

    def test_empty_upsert(self, signature_cache):
        assert signature_cache.upsert_signatures([]) == 0

    def test_persists_across_instances(self, tmp_path):
        db = tmp_path / "sigs.db"
        SignatureCache(db).upsert_signatures([_sig()])
        assert SignatureCache(db).lookup(HASH_A) is not None


class TestUpdateFromJson:
    def test_list_document(self, signature_cache):
        payload = json.dumps([
            {"sha256": HASH_A, "name": "Trojan.Test", "family": "Trojan"},
            {"fingerprint": HASH_B, "name": "Worm.Test", "platforms": "linux"},
        ])
        assert signature_cache.update_from_json(payload) == 2
        assert signature_cache.lookup(HASH_B).platforms == ["linux"]

    def test_threats_object(self, signature_cache):
        payload = json.dumps({"version": 3, "threats": [{"sha256": HASH_A, "name": "X"}]})
        assert signature_cache.update_from_json(payload) == 1

    def test_malformed_entries_skipped(self, signature_cache):
        payload = json.dumps([
            {"sha256": HASH_A, "name": "Good"},
            {"name": "No hash"},
            {"sha256": HASH_B},
            "not an object",
        ])
        assert signature_cache.update_from_json(payload) == 1
        assert signature_cache.count_signatures() == 1

    def test_invalid_json_raises(self, signature_cache):
        with pytest.raises(SignatureCacheError):
            signature_cache.update_from_json("{not json")

    def test_wrong_shape_raises(self, signature_cache):
        with pytest.raises(SignatureCacheError):
            signature_cache.update_from_json(json.dumps({"threats": "nope"}))

    def test_reused_id_across_fingerprints_raises(self, signature_cache):
        payload = json.dumps([
            {"id": "dup", "sha256": HASH_A, "name": "One"},
            {"id": "dup", "sha256": HASH_B, "name": "Two"},
        ])
        with pytest.raises(SignatureCacheError):
            signature_cache.update_from_json(payload)


class TestDetections:
    def test_record_and_list_newest_first(self, signature_cache):
        sig = _sig()
        signature_cache.upsert_signatures([sig])
        signature_cache.record_detection("/tmp/a", HASH_A, sig, DetectionSource.SCAN, "reported")
        signature_cache.record_detection("/tmp/b", None, None, DetectionSource.REALTIME, "quarantined")

        detections = signature_cache.recent_detections()
        assert [d.path for d in detections] == ["/tmp/b", "/tmp/a"]
        assert detections[0].source == DetectionSource.REALTIME
        assert detections[0].signature_id is None
        assert detections[1].signature_id == "sig-1"
        assert detections[1].action == "reported"

    def test_limit(self, signature_cache):
        for i in range(5):
            signature_cache.record_detection(f"/tmp/{i}", None, None, DetectionSource.SCAN, "reported")
        assert len(signature_cache.recent_detections(limit=2)) == 2

    def test_record_never_raises(self, signature_cache):
        signature_cache.db_path.unlink()
        signature_cache.db_path.mkdir()
        signature_cache.record_detection("/tmp/a", None, None, DetectionSource.SCAN, "reported")


class TestOfflineVerdicts:
    def test_batch_lookup_hits_and_misses(self, signature_cache):
        signature_cache.upsert_signatures([_sig()])
        hit, miss = signature_cache.batch_lookup(
            [ThreatApiFile(sha256=HASH_A), ThreatApiFile(sha256=HASH_B)]
        )

        assert hit.is_threat
        assert hit.display_name == "Trojan.Test"
        assert miss.verdict == "unknown"
        assert not miss.is_threat

    def test_single_lookup(self, signature_cache):
        signature_cache.upsert_signatures([_sig()])
        assert signature_cache.single_lookup(HASH_A).is_threat
        assert signature_cache.source_name == "cache"
