"""Tests for the locked journal append and working-tree line materialization."""

import threading

import pytest

from webhook_gate.ledger.journal import append_line_locked, ensure_line, read_lines


@pytest.mark.unit
class TestAppendLineLocked:
    def test_creates_parents_and_file(self, tmp_path):
        path = tmp_path / "state" / "ledger.log"

        append_line_locked(path, "one\n")

        assert path.read_text() == "one\n"

    def test_adds_missing_newline(self, tmp_path):
        path = tmp_path / "ledger.log"

        append_line_locked(path, "one")
        append_line_locked(path, "two")

        assert read_lines(path) == ["one", "two"]

    def test_concurrent_appends_do_not_interleave(self, tmp_path):
        path = tmp_path / "ledger.log"
        line = "x" * 4096

        def writer():
            for _ in range(20):
                append_line_locked(path, line)

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = read_lines(path)
        assert len(lines) == 80
        assert all(item == line for item in lines)

    def test_unwritable_path_raises_oserror(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")

        with pytest.raises(OSError):
            append_line_locked(blocker / "ledger.log", "one")


@pytest.mark.unit
class TestEnsureLine:
    def test_appends_when_absent(self, tmp_path):
        path = tmp_path / "ledger.log"

        assert ensure_line(path, "a\n") is True
        assert path.read_text() == "a\n"

    def test_idempotent_when_present(self, tmp_path):
        path = tmp_path / "ledger.log"
        path.write_text("a\nb\n")

        assert ensure_line(path, "a\n") is False
        assert path.read_text() == "a\nb\n"

    def test_repairs_missing_trailing_newline(self, tmp_path):
        path = tmp_path / "ledger.log"
        path.write_text("a")

        assert ensure_line(path, "b\n") is True
        assert path.read_text() == "a\nb\n"

    def test_read_lines_absent_file(self, tmp_path):
        assert read_lines(tmp_path / "absent.log") == []
