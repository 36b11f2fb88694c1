"""
Session log discovery.

Walks the CLI's project directories and yields raw JSON Lines text.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Union

logger = logging.getLogger(__name__)

LOG_EXTENSION = ".jsonl"

DEFAULT_LOG_DIRS = (
    Path.home() / ".claude" / "projects",
    Path.home() / ".config" / "claude" / "projects",
)

PathLike = Union[str, Path]


class LogScanner:
    """Enumerates session log files and yields their lines.

    Logs are written by an external process and may grow or be malformed
    while we read them, so every failure is scoped to a single file.
    """

    def __init__(self, roots: Sequence[PathLike] = DEFAULT_LOG_DIRS):
        """Initialize the scanner.

        Args:
            roots: Directories to search recursively for log files
        """
        self.roots = [Path(r).expanduser() for r in roots]

    def find_files(self, modified_after: datetime) -> List[Path]:
        """List log files modified at or after the cutoff, in sorted order.

        Missing roots are skipped: they mean the CLI was never used there.
        Hidden files and directories are not visited.

        Args:
            modified_after: Aware or naive datetime; compared against mtime

        Returns:
            Paths sorted lexicographically within each root
        """
        cutoff = modified_after.timestamp()
        files: List[Path] = []
        for root in self.roots:
            if not root.is_dir():
                logger.debug("Log directory %s does not exist, skipping", root)
                continue
            found = []
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                for name in filenames:
                    if name.startswith(".") or not name.endswith(LOG_EXTENSION):
                        continue
                    path = Path(dirpath) / name
                    try:
                        mtime = path.stat().st_mtime
                    except OSError as e:
                        logger.debug("Cannot stat %s: %s", path, e)
                        continue
                    if mtime >= cutoff:
                        found.append(path)
            files.extend(sorted(found))
        return files

    def iter_lines(self, modified_after: datetime) -> Iterator[str]:
        """Lazily yield raw lines from every eligible log file.

        Args:
            modified_after: Files last modified before this are ignored

        Yields:
            Raw text lines, in file order within each file
        """
        for path in self.find_files(modified_after):
            yield from read_log_lines(path)


def read_log_lines(path: PathLike) -> Iterable[str]:
    """Read a whole log file and split it into lines.

    Returns an empty list when the file cannot be opened or is not valid
    UTF-8 text.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Skipping unreadable log file %s: %s", path, e)
        return []
    return content.splitlines()
