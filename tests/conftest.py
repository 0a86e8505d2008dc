"""Shared test fixtures for the Stellar Antivirus test suite."""

import pytest
from pathlib import Path

from stellar_av.security.signature_cache import SignatureCache
from stellar_av.security.quarantine import QuarantineStore

from .security.helpers import RecordingEmitter


@pytest.fixture
def user_dirs(tmp_path):
    """Downloads, Documents and Desktop folders under a fake home."""
    home = tmp_path / "home"
    dirs = {}
    for name in ("Downloads", "Documents", "Desktop"):
        d = home / name
        d.mkdir(parents=True)
        dirs[name.lower()] = d
    return dirs


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def signature_cache(tmp_path):
    return SignatureCache(tmp_path / "data" / "signatures.db")


@pytest.fixture
def quarantine_store(tmp_path):
    return QuarantineStore(tmp_path / "data" / "Quarantine")


@pytest.fixture
def config_file(tmp_path, user_dirs):
    """A config.yaml pointing every directory into tmp_path."""
    data_dir = tmp_path / "data"
    path = tmp_path / "config.yaml"
    path.write_text(
        "agent:\n"
        f"  data_dir: {data_dir}\n"
        f"  downloads_dir: {user_dirs['downloads']}\n"
        f"  documents_dir: {user_dirs['documents']}\n"
        f"  desktop_dir: {user_dirs['desktop']}\n"
        "threat_intel:\n"
        "  enabled: false\n"
        "realtime:\n"
        "  settle_delay: 0\n"
    )
    return path
