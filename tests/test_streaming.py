import json

import pytest

from yield_chat.backend.errors import ProtocolError
from yield_chat.backend.streaming import DONE_SENTINEL, UIMessageStreamWriter, sse_frame


def test_full_text_block_order():
    w = UIMessageStreamWriter()
    out = [
        w.start(),
        w.start_step(),
        w.text_start("text-1"),
        w.text_delta("text-1", "Hel"),
        w.text_delta("text-1", "lo"),
        w.text_end("text-1"),
        w.finish_step(),
        w.finish("stop"),
    ]
    assert [f["type"] for f in w.frames] == [
        "start", "start-step", "text-start", "text-delta", "text-delta", "text-end", "finish-step", "finish",
    ]
    assert out[0] == 'data: {"type": "start"}\n\n'
    assert out[-1].endswith(DONE_SENTINEL)
    assert w.frames[-1] == {"type": "finish", "finishReason": "stop"}
    assert w.finished


def test_sse_frame_keeps_unicode():
    assert sse_frame({"type": "text-delta", "id": "t", "delta": "0xABCD…7890"}) == \
        'data: {"type": "text-delta", "id": "t", "delta": "0xABCD…7890"}\n\n'


def test_finish_is_idempotent():
    w = UIMessageStreamWriter()
    w.start()
    first = w.finish()
    assert first.startswith("data: ")
    assert w.finish() == ""
    assert [f["type"] for f in w.frames].count("finish") == 1


def test_write_after_finish_is_a_protocol_error():
    w = UIMessageStreamWriter()
    w.start()
    w.finish()
    with pytest.raises(ProtocolError):
        w.start_step()
    with pytest.raises(ProtocolError):
        w.text_delta("text-1", "late")


def test_delta_without_open_block_rejected():
    w = UIMessageStreamWriter()
    w.start()
    w.start_step()
    with pytest.raises(ProtocolError):
        w.text_delta("text-1", "x")


def test_nested_text_blocks_rejected():
    w = UIMessageStreamWriter()
    w.start()
    w.start_step()
    w.text_start("text-1")
    with pytest.raises(ProtocolError):
        w.text_start("text-2")
    with pytest.raises(ProtocolError):
        w.text_end("text-2")


def test_finish_with_open_step_rejected():
    w = UIMessageStreamWriter()
    w.start()
    w.start_step()
    with pytest.raises(ProtocolError):
        w.finish()


def test_start_must_come_first():
    w = UIMessageStreamWriter()
    with pytest.raises(ProtocolError):
        w.start_step()


def test_tool_frames_inside_step():
    w = UIMessageStreamWriter()
    w.start()
    w.start_step()
    w.tool_input_available("call_1", "get_positions", {})
    w.tool_output_available("call_1", {"count": 0})
    w.finish_step()
    assert w.frames[2] == {"type": "tool-input-available", "toolCallId": "call_1", "toolName": "get_positions", "input": {}}
    assert w.frames[3]["output"] == {"count": 0}


def test_abort_mid_text_keeps_emitted_frames_and_closes():
    w = UIMessageStreamWriter()
    w.start()
    w.start_step()
    w.text_start("text-1")
    w.text_delta("text-1", "partial")
    out = w.abort("upstream down")
    types = [f["type"] for f in w.frames]
    assert types == [
        "start", "start-step", "text-start", "text-delta", "text-end", "finish-step", "error", "finish",
    ]
    assert w.frames[-2] == {"type": "error", "errorText": "upstream down"}
    assert w.frames[-1]["finishReason"] == "error"
    assert out[-1].endswith(DONE_SENTINEL)
    assert w.abort("again") == []


def test_abort_before_start_still_produces_valid_stream():
    w = UIMessageStreamWriter()
    w.abort("boom")
    assert [f["type"] for f in w.frames] == ["start", "error", "finish"]
    assert json.loads(sse_frame(w.frames[0])[6:]) == {"type": "start"}
