#!/usr/bin/env python3
"""
Integration tests for staged stream-writes and commit.

These tests verify that:
- The live file is untouched until commit
- Interrupted writes are reported and can be resumed within the position tolerance
- Commit backs up the original content and clears the pending session
- Idle sessions are discarded by the sweep
"""

import os
import unittest

from integration_tests.support import StageFSTestCase, read_file, write_file
from stagefs.orchestrator import (
    CommitRequest,
    HistoryRequest,
    PatchRequest,
    ReadRequest,
    RestoreRequest,
    StreamWriteRequest,
)


class TestStreamWrite(StageFSTestCase):
    def setUp(self):
        super().setUp()
        self.file = write_file(self.path("notes.txt"), "original\n")

    def write(self, content, **kwargs):
        return self.orchestrator.execute(
            StreamWriteRequest(path=self.file, content=content, **kwargs)
        )

    def test_first_chunk_starts_session_without_touching_live_file(self):
        result = self.write("hello ")
        self.assertEqual(result["status"], "in_progress")
        self.assertEqual(result["position"], 6)
        self.assertEqual(read_file(self.file), "original\n")
        self.assertIn(self.file, self.orchestrator.sessions)

    def test_complete_chunk_reports_ready_to_commit(self):
        result = self.write("all at once", is_complete=True)
        self.assertEqual(result["status"], "ready_to_commit")
        self.assertEqual(result["position"], len("all at once"))

    def test_second_non_resume_write_reports_interruption(self):
        self.write("line1\nline2\nline3\nline4\nline5\nline6\nline7")
        result = self.write("ignored")
        self.assertEqual(result["status"], "interrupted")
        self.assertEqual(result["last_lines"], "line3\nline4\nline5\nline6\nline7")
        self.assertEqual(result["position"], 41)
        self.assertIn("suggested_action", result)
        # The pending draft is unchanged
        staged = self.orchestrator.execute(ReadRequest(path=self.file))
        self.assertEqual(staged["content"][-1]["code"], "line7")

    def test_resume_appends_at_reported_position(self):
        first = self.write("abc")
        result = self.write("def", is_resume=True, position=first["position"])
        self.assertEqual(result["status"], "in_progress")
        self.assertEqual(result["position"], 6)
        self.orchestrator.execute(CommitRequest(path=self.file))
        self.assertEqual(read_file(self.file), "abcdef")

    def test_resume_within_tolerance_is_accepted(self):
        self.write("0123456789")
        for offset in (-5, 5):
            pending = self.orchestrator.sessions.get(self.file)
            result = self.write("x", is_resume=True, position=pending.position + offset)
            self.assertEqual(result["status"], "in_progress", result)

    def test_resume_outside_tolerance_is_rejected(self):
        self.write("0123456789")
        result = self.write("x", is_resume=True, position=16)
        self.assertError(result, "PositionMismatch")
        self.assertIn("10", result["message"])
        self.assertEqual(self.orchestrator.sessions.get(self.file).position, 10)

    def test_resume_without_pending_session(self):
        result = self.write("x", is_resume=True, position=0)
        self.assertError(result, "NoPendingEdit")
        self.assertNotIn(self.file, self.orchestrator.sessions)

    def test_read_shows_staged_content_while_pending(self):
        self.write("draft line 1\ndraft line 2")
        result = self.orchestrator.execute(ReadRequest(path=self.file))
        self.assertTrue(result["is_pending_changes"])
        self.assertEqual(
            result["content"],
            [
                {"line_number": 1, "code": "draft line 1"},
                {"line_number": 2, "code": "draft line 2"},
            ],
        )

    def test_commit_replaces_live_file_and_backs_up_original(self):
        self.write("new body", is_complete=True)
        result = self.orchestrator.execute(CommitRequest(path=self.file))

        self.assertEqual(result["status"], "committed")
        self.assertEqual(read_file(self.file), "new body")
        self.assertNotIn(self.file, self.orchestrator.sessions)
        self.assertEqual(
            [e for e in os.listdir(self.config.staging_dir) if e.endswith(".temp")], []
        )

        history = self.orchestrator.execute(HistoryRequest(path=self.file))
        versions = history["history"]["versions"]
        self.assertEqual(len(versions), 1)
        self.assertEqual(versions[0]["version"], result["version"])
        self.assertEqual(read_file(versions[0]["path"]), "original\n")

    def test_commit_without_pending_session(self):
        result = self.orchestrator.execute(CommitRequest(path=self.file))
        self.assertError(result, "NoPendingEdit")
        self.assertEqual(read_file(self.file), "original\n")

    def test_commit_creates_new_file_and_parents(self):
        new_file = self.path("pkg", "deep", "module.py")
        self.orchestrator.execute(
            StreamWriteRequest(path=new_file, content="x = 1\n", is_complete=True)
        )
        self.assertFalse(os.path.exists(new_file))

        result = self.orchestrator.execute(CommitRequest(path=new_file))
        self.assertEqual(result["status"], "committed")
        self.assertEqual(read_file(new_file), "x = 1\n")
        # The empty original is still recorded as a version
        self.assertEqual(read_file(os.path.join(self.orchestrator.versions.root_backup_dir(self.root), "pkg", "deep", result["backup"])), "")

    def test_commit_over_non_utf8_file_keeps_original_bytes(self):
        legacy = self.path("latin.txt")
        with open(legacy, "wb") as f:
            f.write(b"caf\xe9\n")

        started = self.orchestrator.execute(
            StreamWriteRequest(path=legacy, content="new", is_complete=True)
        )
        self.assertEqual(started["status"], "ready_to_commit", started)
        committed = self.orchestrator.execute(CommitRequest(path=legacy))
        self.assertEqual(committed["status"], "committed", committed)
        self.assertEqual(read_file(legacy), "new")

        self.clock.advance(1)
        restored = self.orchestrator.execute(
            RestoreRequest(path=legacy, version=committed["version"])
        )
        self.assertEqual(restored["status"], "restored", restored)
        with open(legacy, "rb") as f:
            self.assertEqual(f.read(), b"caf\xe9\n")

    def test_sessions_for_different_files_are_independent(self):
        other = write_file(self.path("sub", "notes.txt"), "other\n")
        self.write("first")
        result = self.orchestrator.execute(StreamWriteRequest(path=other, content="second"))
        self.assertEqual(result["status"], "in_progress")
        self.orchestrator.execute(CommitRequest(path=other))
        self.orchestrator.execute(CommitRequest(path=self.file))
        self.assertEqual(read_file(other), "second")
        self.assertEqual(read_file(self.file), "first")

    def test_stream_write_outside_sandbox(self):
        result = self.orchestrator.execute(
            StreamWriteRequest(path=os.path.join(self.root, "..", "escape.txt"), content="x")
        )
        self.assertError(result, "InvalidPath")
        self.assertEqual(len(self.orchestrator.sessions), 0)

    def test_stream_write_to_directory_fails(self):
        os.makedirs(self.path("adir"))
        result = self.orchestrator.execute(StreamWriteRequest(path=self.path("adir"), content="x"))
        self.assertError(result, "UnderlyingIOFailure")

    def test_patch_and_restore_refused_while_write_pending(self):
        self.write("pending")
        patch = self.orchestrator.execute(
            PatchRequest(path=self.file, start_line=1, end_line=1, new_code="x")
        )
        self.assertError(patch, "MutationConflict")
        restore = self.orchestrator.execute(RestoreRequest(path=self.file, version="1"))
        self.assertError(restore, "MutationConflict")
        self.assertEqual(read_file(self.file), "original\n")


class TestSessionExpiry(StageFSTestCase):
    session_timeout = 60.0

    def test_idle_session_is_discarded(self):
        file = self.path("draft.txt")
        self.orchestrator.execute(StreamWriteRequest(path=file, content="stale"))
        staging_path = self.orchestrator.sessions.get(file).staging_path

        self.clock.advance(61)
        result = self.orchestrator.execute(StreamWriteRequest(path=file, content="fresh"))

        self.assertEqual(result["status"], "in_progress")
        self.assertEqual(result["position"], 5)
        self.assertEqual(read_file(staging_path), "fresh")

    def test_active_session_survives(self):
        file = self.path("draft.txt")
        first = self.orchestrator.execute(StreamWriteRequest(path=file, content="a"))
        self.clock.advance(50)
        self.orchestrator.execute(
            StreamWriteRequest(path=file, content="b", is_resume=True, position=first["position"])
        )
        self.clock.advance(50)
        result = self.orchestrator.execute(CommitRequest(path=file))
        self.assertEqual(result["status"], "committed")
        self.assertEqual(read_file(file), "ab")


class TestStagingReset(StageFSTestCase):
    def test_startup_discards_leftover_staging_files(self):
        leftover = write_file(os.path.join(self.config.staging_dir, "old.temp"), "junk")
        os.makedirs(os.path.join(self.config.staging_dir, "locks"), exist_ok=True)
        type(self.orchestrator).startup(self.config)
        self.assertFalse(os.path.exists(leftover))
        self.assertEqual(os.listdir(self.config.staging_dir), [])


if __name__ == "__main__":
    unittest.main()
