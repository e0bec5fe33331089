"""Tests for read-time tool-call reconciliation."""

from __future__ import annotations

from recollect.context.reconciler import MISSING_RESULT_STATUS, reconcile_tool_calls
from recollect.models.message import Message, ToolCallPart, ToolResultPart, as_messages
from tests.conftest import tool_call_message, tool_result_message, user


def _results(view: list[Message]) -> list[ToolResultPart]:
    return [
        part
        for m in view
        if isinstance(m.content, list)
        for part in m.content
        if isinstance(part, ToolResultPart)
    ]


def _missing(view: list[Message]) -> list[ToolResultPart]:
    return [
        p
        for p in _results(view)
        if isinstance(p.result, dict) and p.result.get("status") == MISSING_RESULT_STATUS
    ]


class TestReconcileToolCalls:
    def test_legacy_call_without_result_gets_placeholder(self):
        history = as_messages(
            [
                {"role": "user", "content": "look it up"},
                {
                    "role": "assistant",
                    "content": "",
                    "toolCalls": [{"toolCallId": "call-a", "toolName": "search", "args": {}}],
                },
            ]
        )
        view = reconcile_tool_calls(history)
        missing = _missing(view)
        assert len(missing) == 1
        assert missing[0].tool_call_id == "call-a"
        assert missing[0].tool_name == "search"
        assert view[-1].role == "tool"

    def test_only_unresolved_call_gets_placeholder(self):
        history = as_messages(
            [
                tool_call_message(("call-a", "search"), ("call-b", "fetch")),
                tool_result_message("call-a", "search"),
            ]
        )
        view = reconcile_tool_calls(history)
        missing = _missing(view)
        assert [p.tool_call_id for p in missing] == ["call-b"]
        assert len(_results(view)) == 2

    def test_placeholders_grouped_in_one_message(self):
        history = as_messages([tool_call_message(("c1", "a"), ("c2", "b"), ("c3", "c"))])
        view = reconcile_tool_calls(history)
        assert len(view) == 2
        assert [p.tool_call_id for p in view[-1].content] == ["c1", "c2", "c3"]

    def test_orphan_result_dropped(self):
        history = [user("hi"), *as_messages([tool_result_message("ghost", "search")])]
        view = reconcile_tool_calls(history)
        assert view == [user("hi")]

    def test_orphan_dropped_from_mixed_tool_message(self):
        history = as_messages(
            [
                tool_call_message(("call-a", "search")),
                {
                    "role": "tool",
                    "content": [
                        {"type": "tool-result", "toolCallId": "call-a", "toolName": "search", "output": 1},
                        {"type": "tool-result", "toolCallId": "ghost", "toolName": "x", "output": 2},
                    ],
                },
            ]
        )
        view = reconcile_tool_calls(history)
        assert [p.tool_call_id for p in _results(view)] == ["call-a"]
        assert _missing(view) == []

    def test_inline_assistant_result_resolves(self):
        history = as_messages(
            [
                {
                    "role": "assistant",
                    "content": [
                        {"type": "tool-call", "toolCallId": "c", "toolName": "t", "input": {}},
                        {"type": "tool-result", "toolCallId": "c", "toolName": "t", "output": "done"},
                    ],
                }
            ]
        )
        assert reconcile_tool_calls(history) == history

    def test_result_before_call_still_resolves(self):
        history = as_messages(
            [tool_result_message("c", "t"), tool_call_message(("c", "t"))]
        )
        view = reconcile_tool_calls(history)
        assert _missing(view) == []
        assert len(view) == 2

    def test_idempotent(self):
        history = as_messages(
            [
                {"role": "user", "content": "go"},
                tool_call_message(("a", "x"), ("b", "y")),
                tool_result_message("a", "x"),
                tool_result_message("zzz", "orphan"),
            ]
        )
        once = reconcile_tool_calls(history)
        assert reconcile_tool_calls(once) == once

    def test_input_not_modified(self):
        history = as_messages([tool_call_message(("a", "x")), tool_result_message("ghost", "y")])
        before = [m.model_copy(deep=True) for m in history]
        reconcile_tool_calls(history)
        assert history == before

    def test_no_dangling_calls_in_view(self):
        """Every call in the view has a result and every result has a call."""
        history = as_messages(
            [
                tool_call_message(("a", "x")),
                tool_result_message("b", "y"),
                tool_call_message(("c", "z")),
                tool_result_message("c", "z"),
            ]
        )
        view = reconcile_tool_calls(history)
        calls = {
            p.tool_call_id
            for m in view
            if isinstance(m.content, list)
            for p in m.content
            if isinstance(p, ToolCallPart)
        }
        results = {p.tool_call_id for p in _results(view)}
        assert calls == results == {"a", "c"}
