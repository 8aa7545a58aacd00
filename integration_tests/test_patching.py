#!/usr/bin/env python3
"""
Integration tests for line-range patches.
"""

import unittest

from integration_tests.support import StageFSTestCase, read_file, write_file
from stagefs.errors import LineRangeOutOfBoundsError
from stagefs.orchestrator import HistoryRequest, PatchRequest, RestoreRequest
from stagefs.patching import replace_line_range


class TestReplaceLineRange(unittest.TestCase):
    """Test the pure line-splicing logic."""

    def test_replace_single_line(self):
        self.assertEqual(replace_line_range("a\nb\nc", 2, 2, "B"), "a\nB\nc")

    def test_replacement_may_grow_or_shrink(self):
        self.assertEqual(replace_line_range("a\nb\nc", 2, 2, "x\ny\nz"), "a\nx\ny\nz\nc")
        self.assertEqual(replace_line_range("a\nb\nc\nd", 2, 3, "m"), "a\nm\nd")

    def test_replace_whole_content(self):
        self.assertEqual(replace_line_range("a\nb", 1, 2, "only"), "only")

    def test_trailing_newline_counts_as_empty_last_line(self):
        content = "a\nb\n"
        self.assertEqual(replace_line_range(content, 3, 3, "c\n"), "a\nb\nc\n")
        self.assertEqual(replace_line_range(content, 1, 1, "A"), "A\nb\n")

    def test_empty_replacement_leaves_blank_line(self):
        self.assertEqual(replace_line_range("a\nb\nc", 2, 2, ""), "a\n\nc")

    def test_out_of_range(self):
        for start, end in ((0, 1), (1, 4), (4, 4)):
            with self.assertRaises(LineRangeOutOfBoundsError):
                replace_line_range("a\nb\nc", start, end, "x")

    def test_start_after_end(self):
        with self.assertRaises(LineRangeOutOfBoundsError):
            replace_line_range("a\nb\nc", 3, 2, "x")


class TestPatchFile(StageFSTestCase):
    def setUp(self):
        super().setUp()
        self.file = write_file(self.path("main.py"), "def f():\n    return 1\n")

    def patch(self, start, end, code):
        return self.orchestrator.execute(
            PatchRequest(path=self.file, start_line=start, end_line=end, new_code=code)
        )

    def test_patch_backs_up_then_writes(self):
        result = self.patch(2, 2, "    return 2")
        self.assertEqual(result["status"], "success")
        self.assertEqual(result["total_lines"], 3)
        self.assertEqual(read_file(self.file), "def f():\n    return 2\n")

        versions = self.orchestrator.execute(HistoryRequest(path=self.file))["history"]["versions"]
        self.assertEqual(len(versions), 1)
        self.assertEqual(versions[0]["version"], result["version"])
        self.assertEqual(read_file(versions[0]["path"]), "def f():\n    return 1\n")

    def test_collapsing_two_lines_into_one(self):
        write_file(self.file, "1\n2\n3\n4\n5")
        result = self.patch(2, 3, "two-three")
        self.assertEqual(result["total_lines"], 4)
        self.assertEqual(read_file(self.file), "1\ntwo-three\n4\n5")

    def test_failed_patch_changes_nothing(self):
        result = self.patch(5, 6, "x")
        self.assertError(result, "LineRangeOutOfBounds")
        self.assertEqual(read_file(self.file), "def f():\n    return 1\n")
        history = self.orchestrator.execute(HistoryRequest(path=self.file))
        self.assertEqual(history["history"]["versions"], [])

    def test_patch_missing_file(self):
        result = self.orchestrator.execute(
            PatchRequest(path=self.path("missing.py"), start_line=1, end_line=1, new_code="x")
        )
        self.assertError(result, "UnderlyingIOFailure")

    def test_successive_patches_keep_every_version(self):
        self.patch(2, 2, "    return 2")
        self.clock.advance(1)
        self.patch(2, 2, "    return 3")
        history = self.orchestrator.execute(HistoryRequest(path=self.file))["history"]
        self.assertEqual(history["stats"]["total_versions"], 2)
        newest, oldest = history["versions"]
        self.assertEqual(read_file(newest["path"]), "def f():\n    return 2\n")
        self.assertEqual(read_file(oldest["path"]), "def f():\n    return 1\n")

    def test_restore_undoes_patch_and_can_be_undone(self):
        result = self.patch(2, 2, "    return 2")
        self.clock.advance(1)

        restored = self.orchestrator.execute(
            RestoreRequest(path=self.file, version=result["version"])
        )
        self.assertEqual(restored["status"], "restored")
        self.assertEqual(restored["restored_from"], result["version"])
        self.assertEqual(read_file(self.file), "def f():\n    return 1\n")

        self.clock.advance(1)
        self.orchestrator.execute(RestoreRequest(path=self.file, version=restored["version"]))
        self.assertEqual(read_file(self.file), "def f():\n    return 2\n")

    def test_restore_unknown_version(self):
        result = self.orchestrator.execute(RestoreRequest(path=self.file, version="42"))
        self.assertError(result, "VersionNotFound")
        self.assertIn("file_history", result["message"])


if __name__ == "__main__":
    unittest.main()
