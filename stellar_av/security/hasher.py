"""Streaming SHA-256 fingerprinting."""

import hashlib
import logging
import os
from typing import Optional, Union

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


def fingerprint(path: Union[str, os.PathLike], chunk_size: int = CHUNK_SIZE) -> Optional[str]:
    """Return the lowercase hex SHA-256 of *path*, or None if it can't be read."""
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            while chunk := f.read(chunk_size):
                digest.update(chunk)
    except OSError as e:
        logger.debug(f"Could not hash {path}: {e}")
        return None
    return digest.hexdigest()
