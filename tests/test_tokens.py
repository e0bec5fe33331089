"""Tests for TokenEstimator and count_message_tokens."""

from __future__ import annotations

import pytest

from recollect.models.message import Message
from recollect.tokens.estimator import (
    ATTACHMENT_SURCHARGE,
    MESSAGE_OVERHEAD,
    TOOL_SURCHARGE,
    TokenEstimator,
    count_message_tokens,
)
from tests.conftest import word_counter


@pytest.fixture
def estimator():
    """TokenEstimator using heuristic only (no tiktoken download in tests)."""
    e = TokenEstimator()
    e._force_heuristic = True
    return e


class TestTokenEstimator:
    def test_empty_text_is_zero(self, estimator):
        assert estimator.estimate("") == 0

    def test_heuristic_is_len_div_four(self, estimator):
        assert estimator.estimate("a" * 40) == 10

    def test_heuristic_minimum_one(self, estimator):
        """Short non-empty text counts at least one token."""
        assert estimator.estimate("hi") == 1

    def test_callable(self, estimator):
        assert estimator("a" * 8) == 2

    def test_falls_back_when_encoding_unavailable(self, monkeypatch):
        """A tiktoken failure switches the estimator to the heuristic permanently."""
        import tiktoken

        def _boom(name):
            raise RuntimeError("no network")

        monkeypatch.setattr(tiktoken, "get_encoding", _boom)
        e = TokenEstimator()
        assert e.estimate("a" * 12) == 3
        assert e._force_heuristic is True

    def test_encoder_is_cached(self, monkeypatch):
        import tiktoken

        loads: list[str] = []

        class _Encoder:
            def encode(self, text):
                return text.split()

        def _get(name):
            loads.append(name)
            return _Encoder()

        monkeypatch.setattr(tiktoken, "get_encoding", _get)
        e = TokenEstimator()
        assert e.estimate("one two three") == 3
        assert e.estimate("four five") == 2
        assert loads == ["o200k_base"]


class TestCountMessageTokens:
    def test_string_content(self):
        msgs = [Message(role="user", content="one two three")]
        assert count_message_tokens(msgs, word_counter) == MESSAGE_OVERHEAD + 3

    def test_text_parts_are_summed(self):
        msgs = [
            Message.model_validate(
                {
                    "role": "user",
                    "content": [{"type": "text", "text": "a b"}, {"type": "text", "text": "c"}],
                }
            )
        ]
        assert count_message_tokens(msgs, word_counter) == MESSAGE_OVERHEAD + 3

    def test_file_and_image_surcharge(self):
        msgs = [
            Message.model_validate(
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "see attached"},
                        {"type": "file", "filename": "a.pdf", "mediaType": "application/pdf"},
                        {"type": "image", "mediaType": "image/png", "image": "AAAA"},
                    ],
                }
            )
        ]
        expected = MESSAGE_OVERHEAD + 2 + 2 * ATTACHMENT_SURCHARGE
        assert count_message_tokens(msgs, word_counter) == expected

    def test_legacy_tool_calls(self):
        """Legacy toolCalls cost name + serialized args + surcharge."""
        msg = Message.model_validate(
            {
                "role": "assistant",
                "content": "",
                "toolCalls": [{"toolCallId": "call-a", "toolName": "search", "args": {"q": "x"}}],
            }
        )
        # '{"q": "x"}' is two whitespace-separated words
        assert count_message_tokens([msg], word_counter) == MESSAGE_OVERHEAD + 1 + 2 + TOOL_SURCHARGE

    def test_legacy_tool_call_input_key(self):
        msg = Message.model_validate(
            {
                "role": "assistant",
                "content": "",
                "toolCalls": [{"toolCallId": "c", "toolName": "search", "input": {"q": "x"}}],
            }
        )
        assert count_message_tokens([msg], word_counter) == MESSAGE_OVERHEAD + 1 + 2 + TOOL_SURCHARGE

    def test_inline_tool_call_part(self):
        msg = Message.model_validate(
            {
                "role": "assistant",
                "content": [
                    {"type": "tool-call", "toolCallId": "c", "toolName": "search", "input": {"q": "x"}}
                ],
            }
        )
        assert count_message_tokens([msg], word_counter) == MESSAGE_OVERHEAD + 1 + 2 + TOOL_SURCHARGE

    def test_tool_result_output_or_result(self):
        with_output = Message.model_validate(
            {
                "role": "tool",
                "content": [
                    {"type": "tool-result", "toolCallId": "c", "toolName": "s", "output": {"ok": True}}
                ],
            }
        )
        with_result = Message.model_validate(
            {
                "role": "tool",
                "content": [
                    {"type": "tool-result", "toolCallId": "c", "toolName": "s", "result": {"ok": True}}
                ],
            }
        )
        expected = MESSAGE_OVERHEAD + 2 + TOOL_SURCHARGE
        assert count_message_tokens([with_output], word_counter) == expected
        assert count_message_tokens([with_result], word_counter) == expected

    def test_unknown_parts_cost_nothing(self):
        msg = Message.model_validate(
            {"role": "assistant", "content": [{"type": "source", "url": "https://example.com"}]}
        )
        assert count_message_tokens([msg], word_counter) == MESSAGE_OVERHEAD

    def test_empty_list(self):
        assert count_message_tokens([], word_counter) == 0
