"""
Unit tests for session log discovery.
"""

import os
from datetime import datetime, timedelta
from pathlib import Path

from token_meter.core.log_scanner import LogScanner, read_log_lines


class TestLogScanner:
    """Test file discovery and line reading."""

    def _write(self, path: Path, lines, age_days: float = 0) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        if age_days:
            mtime = (datetime.now() - timedelta(days=age_days)).timestamp()
            os.utime(path, (mtime, mtime))
        return path

    def test_reads_jsonl_files_recursively(self, tmp_path):
        """Verify nested project and subagent logs are found."""
        self._write(tmp_path / "proj-a" / "one.jsonl", ["a1", "a2"])
        self._write(tmp_path / "proj-b" / "subagents" / "two.jsonl", ["b1"])

        scanner = LogScanner([tmp_path])
        lines = list(scanner.iter_lines(datetime.now() - timedelta(days=1)))

        assert sorted(lines) == ["a1", "a2", "b1"]

    def test_preserves_order_within_file(self, tmp_path):
        """Lines from one file come out in file order."""
        self._write(tmp_path / "p" / "log.jsonl", ["3", "1", "2"])
        lines = list(LogScanner([tmp_path]).iter_lines(datetime.now() - timedelta(days=1)))
        assert lines == ["3", "1", "2"]

    def test_files_visited_in_sorted_order(self, tmp_path):
        """File order is deterministic across runs."""
        self._write(tmp_path / "p" / "b.jsonl", ["b"])
        self._write(tmp_path / "p" / "a.jsonl", ["a"])
        files = LogScanner([tmp_path]).find_files(datetime.now() - timedelta(days=1))
        assert [f.name for f in files] == ["a.jsonl", "b.jsonl"]

    def test_filters_by_extension(self, tmp_path):
        """Only .jsonl files are log files."""
        self._write(tmp_path / "p" / "notes.txt", ["nope"])
        self._write(tmp_path / "p" / "log.json", ["nope"])
        self._write(tmp_path / "p" / "log.jsonl", ["yes"])
        lines = list(LogScanner([tmp_path]).iter_lines(datetime.now() - timedelta(days=1)))
        assert lines == ["yes"]

    def test_filters_by_modification_time(self, tmp_path):
        """Files last modified before the cutoff are skipped."""
        self._write(tmp_path / "p" / "old.jsonl", ["old"], age_days=40)
        self._write(tmp_path / "p" / "new.jsonl", ["new"])
        lines = list(LogScanner([tmp_path]).iter_lines(datetime.now() - timedelta(days=30)))
        assert lines == ["new"]

    def test_skips_hidden_entries(self, tmp_path):
        """Hidden files and directories are not visited."""
        self._write(tmp_path / ".hidden" / "log.jsonl", ["hidden-dir"])
        self._write(tmp_path / "p" / ".log.jsonl", ["hidden-file"])
        lines = list(LogScanner([tmp_path]).iter_lines(datetime.now() - timedelta(days=1)))
        assert lines == []

    def test_missing_directory_is_skipped(self, tmp_path):
        """A root that does not exist is not an error."""
        self._write(tmp_path / "p" / "log.jsonl", ["x"])
        scanner = LogScanner([tmp_path / "missing", tmp_path])
        assert list(scanner.iter_lines(datetime.now() - timedelta(days=1))) == ["x"]

    def test_undecodable_file_is_skipped(self, tmp_path):
        """A file that is not UTF-8 text does not abort the scan."""
        bad = tmp_path / "p" / "a.jsonl"
        bad.parent.mkdir(parents=True)
        bad.write_bytes(b"\xff\xfe\x00garbage")
        self._write(tmp_path / "p" / "b.jsonl", ["good"])

        lines = list(LogScanner([tmp_path]).iter_lines(datetime.now() - timedelta(days=1)))
        assert lines == ["good"]

    def test_read_log_lines_missing_file(self, tmp_path):
        """An unreadable file yields nothing."""
        assert list(read_log_lines(tmp_path / "gone.jsonl")) == []
