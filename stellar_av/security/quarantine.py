"""Filesystem-backed quarantine: isolate, restore and delete suspect files.

Quarantined files live directly under a single root directory and are
addressed by base filename only. The directory listing is the source of
truth; there is no separate index to keep in sync.

Every name handed in from outside is validated before any file is touched,
so a batch containing one bad name mutates nothing.
"""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Sequence, Union

from .errors import InvalidQuarantineNameError, QuarantineError
from .models import QuarantineItem, RestoreItem

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".stellar_backup"

PathLike = Union[str, os.PathLike]


def validate_quarantine_name(name: str) -> None:
    """Reject anything that is not a single plain path segment."""
    if not name or name in (".", ".."):
        raise InvalidQuarantineNameError(name)
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if any(sep in name for sep in separators) or "\x00" in name:
        raise InvalidQuarantineNameError(name)
    if os.path.splitdrive(name)[0]:
        raise InvalidQuarantineNameError(name)


def _move(src: Path, dest: Path) -> None:
    """Rename *src* to *dest*, falling back to copy-then-delete."""
    try:
        os.rename(src, dest)
        return
    except OSError as e:
        logger.warning(f"rename failed ({src} -> {dest}): {e}, trying copy+delete")
    shutil.copy2(src, dest)
    os.remove(src)


class QuarantineStore:
    """Moves files into and out of a dedicated quarantine root."""

    def __init__(self, root: PathLike):
        self.root = Path(root)

    def list_items(self) -> List[QuarantineItem]:
        """Files currently in quarantine, sorted by name."""
        if not self.root.is_dir():
            return []
        items = []
        for entry in sorted(self.root.iterdir()):
            try:
                if not entry.is_file():
                    continue
                st = entry.stat()
            except OSError:
                continue
            items.append(
                QuarantineItem(
                    name=entry.name,
                    size=st.st_size,
                    quarantined_at=datetime.fromtimestamp(st.st_mtime),
                )
            )
        return items

    def quarantine(self, paths: Iterable[PathLike]) -> List[QuarantineItem]:
        """Move each existing file in *paths* into quarantine.

        A same-named quarantined file is replaced. Missing sources are
        skipped. Returns what was moved.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise QuarantineError(f"Failed to create quarantine directory: {e}") from e

        moved: List[QuarantineItem] = []
        for original in paths:
            src = Path(original)
            if not src.exists():
                logger.warning(f"File does not exist, skipping: {src}")
                continue

            name = src.name or "unknown"
            dest = self.root / name
            if dest.exists() and os.path.samefile(src, dest):
                logger.warning(f"File is already in quarantine, skipping: {src}")
                continue

            try:
                size = src.stat().st_size
                if dest.exists():
                    os.remove(dest)
                _move(src, dest)
            except OSError as e:
                raise QuarantineError(f"Failed to quarantine file {src}: {e}") from e

            logger.info(f"Quarantined file: {src} -> {dest}")
            moved.append(
                QuarantineItem(
                    name=name,
                    size=size,
                    quarantined_at=datetime.now(),
                    original_path=str(src),
                )
            )
        return moved

    def restore(self, items: Sequence[RestoreItem]) -> List[str]:
        """Move quarantined files back to their original paths.

        Anything already at the original path is renamed aside to a
        ``.stellar_backup`` sibling first. Returns the restored paths.
        """
        for item in items:
            validate_quarantine_name(item.quarantined_name)

        restored: List[str] = []
        for item in items:
            src = self.root / item.quarantined_name
            if not src.exists():
                logger.warning(f"Quarantine file does not exist for restore: {src}")
                continue

            dest = Path(item.original_path)
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create destination directory {dest.parent}: {e}")

            if dest.exists() or dest.is_symlink():
                backup = dest.with_suffix(BACKUP_SUFFIX)
                try:
                    os.replace(dest, backup)
                except OSError as e:
                    raise QuarantineError(
                        f"Failed to back up existing file before restore "
                        f"({dest} -> {backup}): {e}"
                    ) from e
                logger.info(f"Backed up existing file: {dest} -> {backup}")

            try:
                _move(src, dest)
            except OSError as e:
                raise QuarantineError(
                    f"Failed to restore file {item.quarantined_name} to "
                    f"{item.original_path}: {e}"
                ) from e

            logger.info(f"Restored file: {src} -> {dest}")
            restored.append(str(dest))
        return restored

    def delete(self, names: Sequence[str]) -> int:
        """Permanently remove quarantined files. Returns how many were removed."""
        for name in names:
            validate_quarantine_name(name)

        removed = 0
        for name in names:
            path = self.root / name
            if not path.exists():
                logger.warning(f"Quarantine file does not exist for delete: {path}")
                continue
            try:
                os.remove(path)
            except OSError as e:
                raise QuarantineError(f"Failed to delete quarantine file {name}: {e}") from e
            logger.info(f"Deleted quarantine file: {path}")
            removed += 1
        return removed

    def delete_by_original_path(self, paths: Sequence[PathLike]) -> int:
        """Remove the quarantined copies of *paths*, matched by basename."""
        names = [Path(p).name for p in paths]
        return self.delete(names)
