from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List

from common.logger import get_logger

log = get_logger(__name__)


def normalize_extensions(extensions: Iterable[str]) -> List[str]:
    """'PY', '.md' -> '.py', '.md'"""
    out: List[str] = []
    for ext in extensions:
        if not ext or not ext.strip():
            continue
        ext = ext.strip().lower()
        out.append(ext if ext.startswith(".") else f".{ext}")
    return out


class ContentScanner:
    """
    Recursively find files with the allowed extensions under a root folder.
    Symlinks and special files are ignored, unreadable folders are logged and
    skipped so one bad directory does not abort the whole scan.
    """

    def scan(self, root: Path | str, extensions: Iterable[str]) -> List[str]:
        start = Path(root).resolve()
        if not start.exists():
            raise FileNotFoundError(f"The specified start path does not exist: {start}")
        if not start.is_dir():
            raise NotADirectoryError(
                f"The specified start path is not a directory: {start}"
            )

        allowed = set(normalize_extensions(extensions))
        found: List[str] = []
        self._scan_directory(start, allowed, found)
        return sorted(found)

    def _scan_directory(self, current: Path, allowed: set, found: List[str]) -> None:
        try:
            entries = list(os.scandir(current))
        except OSError as e:
            log.warning("Could not read directory %s: %s. Skipping.", current, e)
            return

        for entry in entries:
            try:
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    self._scan_directory(Path(entry.path), allowed, found)
                elif entry.is_file(follow_symlinks=False):
                    if os.path.splitext(entry.name)[1].lower() in allowed:
                        found.append(os.path.abspath(entry.path))
            except OSError as e:
                log.warning("Error processing entry %s: %s. Skipping entry.", entry.path, e)

    @staticmethod
    def read_content(path: Path | str) -> str:
        p = Path(path).resolve()
        try:
            return p.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            log.error("Error reading file %s: %s", p, e)
            raise OSError(f"Error reading file {p}: {e}") from e
