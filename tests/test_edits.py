"""Edit engine and edit-batch parsing."""

import json
import unittest

from smol_shell.edits import (
    AnchorNotFound,
    Edit,
    EditError,
    EditParseError,
    ListDirectory,
    ReadFile,
    UnsupportedOperation,
    apply_edit,
    load_json_payload,
    parse_actions,
    parse_edits,
    tool_arguments,
)


def _call(name, **args):
    return {"type": "function", "function": {"name": name, "arguments": json.dumps(args)}}


class TestApplyEdit(unittest.TestCase):
    def test_insert_after(self):
        edit = Edit(path="a.txt", op="insert_after", anchor="hello", snippet=", world")
        self.assertEqual(apply_edit("hello!", edit), "hello, world!")

    def test_insert_before(self):
        edit = Edit(path="a.txt", op="insert_before", anchor="world", snippet="big ")
        self.assertEqual(apply_edit("hello world", edit), "hello big world")

    def test_insert_uses_first_occurrence(self):
        edit = Edit(path="a.txt", op="insert_after", anchor="x", snippet="!")
        self.assertEqual(apply_edit("x x", edit), "x! x")

    def test_insert_into_empty_file(self):
        edit = Edit(path="new.py", op="insert_after", anchor="", snippet="print(1)\n")
        self.assertEqual(apply_edit("", edit), "print(1)\n")

    def test_replace_first_occurrence(self):
        edit = Edit(path="a.txt", op="replace", anchor="foo", snippet="bar")
        self.assertEqual(apply_edit("foo baz foo", edit), "bar baz foo")

    def test_replace_with_limit(self):
        edit = Edit(path="a.txt", op="replace", anchor="foo", snippet="bar", limit=2)
        self.assertEqual(apply_edit("foo baz foo foo", edit), "bar baz bar foo")

    def test_replace_not_enough_occurrences(self):
        edit = Edit(path="a.txt", op="replace", anchor="foo", snippet="bar", limit=3)
        with self.assertRaises(AnchorNotFound) as ctx:
            apply_edit("foo baz foo", edit)
        self.assertIn("found 2, need 3", str(ctx.exception))

    def test_anchor_not_found(self):
        for op in ("replace", "insert_after", "insert_before"):
            edit = Edit(path="a.txt", op=op, anchor="missing", snippet="x")
            with self.assertRaises(AnchorNotFound):
                apply_edit("some text", edit)

    def test_unsupported_operation(self):
        edit = Edit(path="a.txt", op="delete", anchor="a", snippet="")
        with self.assertRaises(UnsupportedOperation) as ctx:
            apply_edit("abc", edit)
        self.assertIsInstance(ctx.exception, EditError)
        self.assertIn("unsupported operation: delete", str(ctx.exception))

    def test_pure(self):
        original = "keep me, keep"
        edit = Edit(path="a.txt", op="replace", anchor="keep", snippet="drop")
        first = apply_edit(original, edit)
        self.assertEqual(apply_edit(original, edit), first)
        self.assertEqual(first, "drop me, keep")
        self.assertEqual(original, "keep me, keep")

        missing = Edit(path="a.txt", op="insert_before", anchor="absent", snippet="x")
        for _ in range(2):
            with self.assertRaises(AnchorNotFound):
                apply_edit(original, missing)
        self.assertEqual(original, "keep me, keep")

    def test_insert_after_removal_restores_original(self):
        cases = [
            ("hello world", "hello", ", big"),
            ("x x x", "x", "!"),
            ("fn main() {}\n", "{", "\n    println!();\n"),
            ("héllo wörld", "wö", "ß→"),
            ("日本語のテキスト", "本", "🙂"),
            ("anything", "", "prefix "),
        ]
        for text, anchor, snippet in cases:
            edited = apply_edit(text, Edit(path="t", op="insert_after", anchor=anchor, snippet=snippet))
            at = text.find(anchor) + len(anchor)
            self.assertEqual(edited[at:at + len(snippet)], snippet, msg=repr(text))
            self.assertEqual(edited[:at] + edited[at + len(snippet):], text, msg=repr(text))


class TestParseEdits(unittest.TestCase):
    def test_edits_object(self):
        raw = json.dumps({
            "edits": [
                {"path": "src/a.py", "op": "replace", "anchor": "x", "snippet": "y", "rationale": "rename"},
                {"path": "b.py", "op": "insert_after", "anchor": "", "snippet": "z", "limit": 1},
            ]
        })
        batch = parse_edits(raw)
        self.assertEqual(len(batch.edits), 2)
        self.assertEqual(batch.edits[0], Edit("src/a.py", "replace", "x", "y", 1, "rename"))
        self.assertEqual(batch.edits[1].op, "insert_after")

    def test_markdown_fenced_json(self):
        raw = '```json\n{"edits": [{"path": "a", "op": "replace", "anchor": "1", "snippet": "2"}]}\n```'
        self.assertEqual(len(parse_edits(raw).edits), 1)

    def test_edits_with_answer(self):
        batch = parse_edits('{"edits": [], "answer": "Nothing to change."}')
        self.assertEqual(batch.edits, [])
        self.assertEqual(batch.answers, ["Nothing to change."])
        self.assertFalse(batch.is_empty)

    def test_json_helpers(self):
        self.assertEqual(load_json_payload('```json\n{"a": 1}\n```'), {"a": 1})
        self.assertEqual(load_json_payload([1]), [1])
        with self.assertRaises(EditParseError):
            load_json_payload("```\n```")
        self.assertEqual(tool_arguments(_call("read_file", path="x")), {"path": "x"})
        self.assertEqual(tool_arguments({"function": {"arguments": {"path": "y"}}}), {"path": "y"})
        self.assertIsNone(tool_arguments({"function": {"arguments": "{bad"}}))

    def test_invalid_json(self):
        with self.assertRaises(EditParseError):
            parse_edits("sure, here are my edits")

    def test_empty(self):
        with self.assertRaises(EditParseError):
            parse_edits("   ")

    def test_structural_checks(self):
        bad = [
            {"op": "replace", "anchor": "a", "snippet": "b"},
            {"path": "a", "anchor": "a", "snippet": "b"},
            {"path": "a", "op": "replace", "anchor": 3, "snippet": "b"},
            {"path": "a", "op": "replace", "anchor": "a"},
            {"path": "a", "op": "replace", "anchor": "a", "snippet": "b", "limit": 0},
            {"path": "a", "op": "replace", "anchor": "a", "snippet": "b", "limit": True},
            {"path": "a", "op": "replace", "anchor": "a", "snippet": "b", "rationale": 5},
        ]
        for item in bad:
            with self.assertRaises(EditParseError, msg=str(item)):
                parse_edits({"edits": [item]})

    def test_edits_not_a_list(self):
        with self.assertRaises(EditParseError):
            parse_edits({"edits": "nope"})

    def test_tool_calls_json(self):
        raw = json.dumps([
            _call("edit", file_path="a.py", old_string="x = 1", new_string="x = 2"),
            _call("insert_before", path="b.py", anchor="def f", snippet="# f\n"),
            _call("provide_answer", answer="done"),
            _call("read", file_path="c.py"),
            _call("list", path="src"),
            _call("mystery", foo="bar"),
        ])
        batch = parse_edits(raw)
        self.assertEqual([e.path for e in batch.edits], ["a.py", "b.py"])
        self.assertEqual(batch.edits[0].op, "replace")
        self.assertEqual(batch.edits[0].snippet, "x = 2")
        self.assertEqual(batch.answers, ["done"])
        self.assertEqual(batch.requests, [ReadFile("c.py"), ListDirectory("src")])

    def test_structured_tool_calls(self):
        calls = [{"function": {"name": "replace_text", "arguments": {"path": "a", "anchor": "1", "snippet": "2", "limit": 1}}}]
        batch = parse_edits(calls)
        self.assertEqual(batch.edits, [Edit("a", "replace", "1", "2")])

    def test_tool_calls_with_bad_arguments_are_dropped(self):
        calls = [{"function": {"name": "edit", "arguments": "{not json"}}]
        self.assertEqual(parse_actions(calls), [])


if __name__ == "__main__":
    unittest.main()
