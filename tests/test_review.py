"""Review state machine and undo, driven through a Session."""

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from smol_shell import review
from smol_shell.config import AppConfig
from smol_shell.edits import Edit, EditBatch
from smol_shell.messages import MessageKind
from smol_shell.session import Session


def _texts(session, kind=None):
    return [m.text for m in session.messages if kind is None or m.kind == kind]


class ReviewTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name).resolve()
        self.root = base / "repo"
        self.root.mkdir()
        self.state_dir = base / "state"
        self.session = Session(AppConfig(api_key="k"), self.root, state_dir=self.state_dir)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, rel, text):
        p = self.root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return p

    def begin(self, *edits):
        return review.begin_review(self.session, EditBatch(edits=list(edits)))


class TestBeginReview(ReviewTestCase):
    def test_prepares_diff_without_writing(self):
        self.write("a.txt", "foo baz foo")
        self.assertTrue(self.begin(Edit("a.txt", "replace", "foo", "bar")))
        current = self.session.review.current_edit()
        self.assertEqual(current.new_content, "bar baz foo")
        self.assertIn("-foo baz foo", current.diff)
        self.assertIn("+bar baz foo", current.diff)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "foo baz foo")
        self.assertIn("Proposed edits ready for review (1 items).", _texts(self.session))

    def test_skips_suspicious_and_escaping_paths(self):
        self.write("ok.txt", "x")
        started = self.begin(
            Edit("/etc/passwd", "replace", "root", "toor"),
            Edit(".env", "insert_after", "", "SECRET=1"),
            Edit("sub/../../escape.txt", "insert_after", "", "x"),
            Edit("ok.txt", "replace", "x", "y"),
        )
        self.assertTrue(started)
        warnings = _texts(self.session, MessageKind.WARN)
        self.assertIn("Skipping suspicious path: /etc/passwd", warnings)
        self.assertIn("Skipping suspicious path: .env", warnings)
        self.assertTrue(any(w.startswith("Invalid path sub/../../escape.txt") for w in warnings))
        self.assertEqual([e.path for e in self.session.review.edits], ["ok.txt"])

    def test_nul_byte_path_skips_only_that_edit(self):
        self.write("ok.txt", "x")
        started = self.begin(
            Edit("a\x00b", "insert_after", "", "x"),
            Edit("ok.txt", "replace", "x", "y"),
        )
        self.assertTrue(started)
        warnings = _texts(self.session, MessageKind.WARN)
        self.assertTrue(any(w.startswith("Invalid path a\x00b") for w in warnings))
        self.assertEqual([e.path for e in self.session.review.edits], ["ok.txt"])

    def test_anchor_failures_and_no_ops(self):
        self.write("a.txt", "hello")
        started = self.begin(
            Edit("a.txt", "replace", "missing", "x"),
            Edit("a.txt", "replace", "hello", "hello"),
        )
        self.assertFalse(started)
        self.assertIsNone(self.session.review)
        texts = _texts(self.session)
        self.assertIn("Skipping a.txt: anchor not found enough times (found 0, need 1)", texts)
        self.assertIn("No change for a.txt", texts)
        self.assertEqual(texts[-1], "No applicable edits.")
        self.assertFalse((self.state_dir / "backups").exists())


class TestApplyAndUndo(ReviewTestCase):
    def test_apply_then_undo_restores_bytes(self):
        self.write("a.txt", "foo baz foo")
        self.begin(Edit("a.txt", "replace", "foo", "bar"))
        review.apply_current(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "bar baz foo")
        self.assertIsNone(self.session.review)
        self.assertIn("Review complete.", _texts(self.session))
        self.assertEqual(len(self.session.undo_stack), 1)
        record = self.session.undo_stack[0]
        self.assertEqual(record.backup_file.read_text(encoding="utf-8"), "foo baz foo")

        review.undo_last(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "foo baz foo")
        self.assertEqual(_texts(self.session)[-1], "Reverted a.txt")
        self.assertEqual(self.session.undo_stack, [])

    def test_new_file_undo_removes_it(self):
        self.begin(Edit("pkg/new.py", "insert_after", "", "x = 1\n"))
        review.apply_current(self.session)
        target = self.root / "pkg" / "new.py"
        self.assertEqual(target.read_text(encoding="utf-8"), "x = 1\n")
        self.assertFalse(self.session.undo_stack[0].backup_file.exists())

        review.undo_last(self.session)
        self.assertFalse(target.exists())
        self.assertEqual(_texts(self.session)[-1], "Removed pkg/new.py")

    def test_undo_new_file_already_removed(self):
        self.begin(Edit("n.txt", "insert_after", "", "x"))
        review.apply_current(self.session)
        (self.root / "n.txt").unlink()
        review.undo_last(self.session)
        self.assertEqual(_texts(self.session)[-1], "Nothing to undo for n.txt")

    def test_undo_empty_stack(self):
        review.undo_last(self.session)
        self.assertEqual(_texts(self.session)[-1], "Nothing to undo.")

    def test_undo_refused_during_review(self):
        self.write("a.txt", "a")
        self.begin(Edit("a.txt", "replace", "a", "b"))
        review.undo_last(self.session)
        self.assertIn("Finish or cancel", _texts(self.session, MessageKind.WARN)[-1])
        self.assertIsNotNone(self.session.review)

    def test_skip_and_cancel(self):
        self.write("a.txt", "a")
        self.write("b.txt", "b")
        self.write("c.txt", "c")
        self.begin(
            Edit("a.txt", "replace", "a", "A"),
            Edit("b.txt", "replace", "b", "B"),
            Edit("c.txt", "replace", "c", "C"),
        )
        review.skip_current(self.session, "Skipped")
        self.assertEqual(self.session.review.index, 1)
        review.cancel_review(self.session)
        self.assertIsNone(self.session.review)
        self.assertEqual(_texts(self.session)[-1], "Exited review.")
        for name, text in (("a.txt", "a"), ("b.txt", "b"), ("c.txt", "c")):
            self.assertEqual((self.root / name).read_text(encoding="utf-8"), text)
        self.assertEqual(self.session.undo_stack, [])

    def test_two_edits_same_file(self):
        self.write("a.txt", "one two\n")
        self.begin(
            Edit("a.txt", "replace", "one", "1"),
            Edit("a.txt", "replace", "two", "2"),
        )
        review.apply_current(self.session)
        review.apply_current(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "1 2\n")

        review.undo_last(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "1 two\n")
        review.undo_last(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "one two\n")

    def test_stale_anchor_is_skipped_on_apply(self):
        self.write("a.txt", "alpha")
        self.begin(
            Edit("a.txt", "replace", "alpha", "beta"),
            Edit("a.txt", "insert_after", "alpha", "!"),
        )
        review.apply_current(self.session)
        review.apply_current(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "beta")
        self.assertIsNone(self.session.review)
        self.assertEqual(len(self.session.undo_stack), 1)

    def test_apply_time_no_op_leaves_no_backup_or_undo(self):
        self.write("a.txt", "alpha")
        self.begin(Edit("a.txt", "replace", "alpha", "beta"))
        self.write("a.txt", "alpha, changed elsewhere")
        with mock.patch.object(review, "apply_edit", side_effect=lambda text, edit: text):
            review.apply_current(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "alpha, changed elsewhere")
        self.assertEqual(self.session.undo_stack, [])
        self.assertIsNone(self.session.review)
        self.assertIn("No change for: a.txt", _texts(self.session))
        backups = self.state_dir / "backups"
        self.assertEqual([p for p in backups.rglob("*") if p.is_file()], [])

    def test_apply_and_undo_sequence_is_lifo(self):
        self.write("a.txt", "a")
        self.write("b.txt", "b")
        self.begin(Edit("a.txt", "replace", "a", "A"), Edit("b.txt", "replace", "b", "B"))
        review.apply_current(self.session)
        review.apply_current(self.session)
        review.undo_last(self.session)
        self.assertEqual((self.root / "b.txt").read_text(encoding="utf-8"), "b")
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "A")
        review.undo_last(self.session)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "a")


if __name__ == "__main__":
    unittest.main()
