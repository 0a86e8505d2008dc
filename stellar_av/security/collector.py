"""Bounded discovery of candidate files under the scan roots."""

import logging
import os
import stat
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def _walk_files(root: Path, max_depth: int) -> Iterator[Path]:
    """Yield regular files under *root* no deeper than *max_depth*.

    The root itself is depth 0, so files directly inside it are depth 1.
    Unreadable directories are skipped and symlinks are never followed.
    """
    if max_depth < 1:
        return

    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)

        # Files here sit at depth + 1; don't descend past the limit.
        if depth + 1 >= max_depth:
            dirnames[:] = []
        else:
            dirnames.sort()

        for name in sorted(filenames):
            candidate = current / name
            if candidate.is_symlink():
                continue
            yield candidate


def collect(
    roots: Iterable[PathLike],
    max_depth: int,
    max_files: int,
    max_file_bytes: Optional[int] = None,
) -> Tuple[List[Path], int]:
    """Collect up to *max_files* candidate paths from *roots*, in root order.

    Returns the accepted paths and the number of files skipped for exceeding
    *max_file_bytes*. Missing roots and per-entry errors are ignored.
    """
    paths: List[Path] = []
    skipped_too_large = 0
    root_list = [Path(r) for r in roots]

    for root in root_list:
        if len(paths) >= max_files:
            break
        if not root.is_dir():
            logger.debug(f"Scan root not present, skipping: {root}")
            continue

        for candidate in _walk_files(root, max_depth):
            if len(paths) >= max_files:
                break

            try:
                st = candidate.stat()
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            if max_file_bytes is not None and st.st_size > max_file_bytes:
                skipped_too_large += 1
                continue

            paths.append(candidate)

    logger.info(
        f"collect roots={len(root_list)} depth={max_depth} max_files={max_files} "
        f"limit_bytes={max_file_bytes} -> kept={len(paths)} "
        f"skipped_too_big={skipped_too_large}"
    )
    return paths, skipped_too_large
