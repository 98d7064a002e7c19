"""Walk library roots and yield audio file paths."""

import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from cardcatalog.domain.exceptions import EnumerationError
from cardcatalog.domain.value_objects import (
    AUDIO_EXTENSIONS,
    is_audio_file,
    normalize_extensions,
)
from cardcatalog.infrastructure.observability.error_formatting import (
    format_oserror_message,
)

logger = logging.getLogger(__name__)


class PathEnumerator:
    """Lazy, restartable traversal of the configured roots.

    Hey future me - every iter_paths() call is a fresh os.walk, nothing is persisted
    between runs. Unreadable directories and symlink loops are warnings, not errors:
    one broken folder on the NAS must not stop the other 50k files from being scanned.
    The problems are collected in self.errors so the scan report can count them.
    """

    def __init__(
        self,
        extensions: Iterable[str] = AUDIO_EXTENSIONS,
        follow_symlinks: bool = True,
    ) -> None:
        self.extensions = normalize_extensions(extensions)
        self.follow_symlinks = follow_symlinks
        self.errors: list[EnumerationError] = []

    def _record_error(self, path: Path | str, exc: OSError | None, reason: str) -> None:
        error = EnumerationError(path, reason)
        self.errors.append(error)
        if exc is not None:
            logger.warning(format_oserror_message(exc, "read directory", path))
        else:
            logger.warning(error.message)

    def iter_paths(self, roots: Iterable[Path]) -> Iterator[Path]:
        """Yield absolute paths of audio files under the roots."""
        self.errors = []
        seen_files: set[Path] = set()
        for root in roots:
            root = Path(root).expanduser().absolute()
            if not root.is_dir():
                self._record_error(root, None, "root is not a readable directory")
                continue
            yield from self._walk_root(root, seen_files)

    def _walk_root(self, root: Path, seen_files: set[Path]) -> Iterator[Path]:
        # (st_dev, st_ino) of every directory entered - following a symlink into a
        # directory we already walked means a loop (or a duplicate view of the same tree)
        visited: set[tuple[int, int]] = set()

        def on_error(exc: OSError) -> None:
            self._record_error(exc.filename or root, exc, exc.strerror or str(exc))

        for dirpath, dirnames, filenames in os.walk(
            root, onerror=on_error, followlinks=self.follow_symlinks
        ):
            try:
                stat = os.stat(dirpath)
            except OSError as e:
                self._record_error(dirpath, e, e.strerror or str(e))
                dirnames[:] = []
                continue

            key = (stat.st_dev, stat.st_ino)
            if key in visited:
                self._record_error(dirpath, None, "symlink cycle, already visited")
                dirnames[:] = []
                continue
            visited.add(key)

            # Hidden entries (.Trash, .AppleDouble, ._foo.mp3 resource forks) are skipped;
            # pruning dirnames in place stops os.walk from descending into them
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))

            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                path = Path(dirpath) / filename
                if not is_audio_file(path, self.extensions):
                    continue
                # Two symlinked views of the same file are still two paths; only
                # literally repeated paths (overlapping roots) are dropped
                if path in seen_files:
                    continue
                seen_files.add(path)
                yield path
