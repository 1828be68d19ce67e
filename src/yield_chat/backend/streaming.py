"""UI message stream writer.

Serializes chat output as Server-Sent Events, one JSON frame per event::

    data: {"type": "start"}

    data: {"type": "text-delta", "id": "text-1", "delta": "Hello"}

    ...
    data: [DONE]

Both the demo and the live path drive the same ``UIMessageStreamWriter``.
The writer is a small state machine, so frames can only be produced in a
valid order: ``start`` first, steps bracketed by ``start-step``/``finish-step``,
text blocks by ``text-start``/``text-end`` with no nesting, and ``finish``
exactly once at the end.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ProtocolError

MEDIA_TYPE = "text/event-stream"

UI_MESSAGE_STREAM_HEADERS = {
    "x-vercel-ai-ui-message-stream": "v1",
    "cache-control": "no-cache",
    "x-accel-buffering": "no",
}

DONE_SENTINEL = "data: [DONE]\n\n"


class WriterState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    IN_STEP = "in-step"
    IN_TEXT = "in-text"
    FINISHED = "finished"


def sse_frame(frame: Dict[str, Any]) -> str:
    return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n"


class UIMessageStreamWriter:
    """Single-producer frame emitter for one response.

    Every method returns the encoded frame, ready to be yielded to a
    ``StreamingResponse``, and records the frame in ``frames``.
    """

    def __init__(self):
        self.state = WriterState.IDLE
        self.frames: List[Dict[str, Any]] = []
        self.text_id: Optional[str] = None

    def _require(self, *states: WriterState, action: str):
        if self.state == WriterState.FINISHED:
            raise ProtocolError(f"cannot {action}: stream already finished")
        if self.state not in states:
            raise ProtocolError(f"cannot {action} in state {self.state.value}")

    def _emit(self, frame: Dict[str, Any]) -> str:
        self.frames.append(frame)
        return sse_frame(frame)

    @property
    def finished(self) -> bool:
        return self.state == WriterState.FINISHED

    def start(self) -> str:
        self._require(WriterState.IDLE, action="start")
        self.state = WriterState.STARTED
        return self._emit({"type": "start"})

    def start_step(self) -> str:
        self._require(WriterState.STARTED, action="start a step")
        self.state = WriterState.IN_STEP
        return self._emit({"type": "start-step"})

    def text_start(self, text_id: str) -> str:
        self._require(WriterState.IN_STEP, action="open a text block")
        self.state = WriterState.IN_TEXT
        self.text_id = text_id
        return self._emit({"type": "text-start", "id": text_id})

    def text_delta(self, text_id: str, delta: str) -> str:
        self._require(WriterState.IN_TEXT, action="write text")
        if text_id != self.text_id:
            raise ProtocolError(f"text-delta for {text_id} while {self.text_id} is open")
        return self._emit({"type": "text-delta", "id": text_id, "delta": delta})

    def text_end(self, text_id: str) -> str:
        self._require(WriterState.IN_TEXT, action="close a text block")
        if text_id != self.text_id:
            raise ProtocolError(f"text-end for {text_id} while {self.text_id} is open")
        self.state = WriterState.IN_STEP
        self.text_id = None
        return self._emit({"type": "text-end", "id": text_id})

    def tool_input_available(self, tool_call_id: str, tool_name: str, tool_input: Any) -> str:
        self._require(WriterState.IN_STEP, action="report a tool call")
        return self._emit({
            "type": "tool-input-available",
            "toolCallId": tool_call_id,
            "toolName": tool_name,
            "input": tool_input,
        })

    def tool_output_available(self, tool_call_id: str, output: Any) -> str:
        self._require(WriterState.IN_STEP, action="report a tool result")
        return self._emit({"type": "tool-output-available", "toolCallId": tool_call_id, "output": output})

    def finish_step(self) -> str:
        self._require(WriterState.IN_STEP, action="finish a step")
        self.state = WriterState.STARTED
        return self._emit({"type": "finish-step"})

    def finish(self, finish_reason: str = "stop") -> str:
        """Close the stream. Idempotent: later calls return an empty string."""
        if self.state == WriterState.FINISHED:
            return ""
        self._require(WriterState.STARTED, action="finish")
        self.state = WriterState.FINISHED
        return self._emit({"type": "finish", "finishReason": finish_reason}) + DONE_SENTINEL

    def abort(self, error_text: str) -> List[str]:
        """Terminate a failed stream without retracting what was sent.

        Closes any open text block and step, then emits ``error`` and a
        ``finish`` with reason ``error``.
        """
        if self.state == WriterState.FINISHED:
            return []
        out = []
        if self.state == WriterState.IDLE:
            out.append(self.start())
        if self.state == WriterState.IN_TEXT:
            out.append(self.text_end(self.text_id))
        if self.state == WriterState.IN_STEP:
            out.append(self.finish_step())
        out.append(self._emit({"type": "error", "errorText": error_text}))
        out.append(self.finish("error"))
        return out
