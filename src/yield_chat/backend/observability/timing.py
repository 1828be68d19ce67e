"""
Timing instrumentation for live chat requests.

Captures how long each model round and each tool execution took within one
streamed response. Records are kept in a small in-memory ring buffer (served
by /debug/timing) and, with TIMING_MODE=true, appended to a JSONL file.
"""

import json
import logging
import os
import time
import uuid
from collections import deque
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

# Configuration from environment
TIMING_MODE = os.getenv("TIMING_MODE", "false").lower() == "true"
TIMING_OUTPUT_FILE = os.getenv("TIMING_OUTPUT_FILE", "./logs/chat_timing.jsonl")

MAX_RECENT_RECORDS = 100
_recent_records: Deque[Dict[str, Any]] = deque(maxlen=MAX_RECENT_RECORDS)


@dataclass
class ToolTiming:
    """Timing for a single tool execution."""
    name: str
    start: float
    duration: float
    ok: bool = True


@dataclass
class ModelTiming:
    """Timing for one streamed model round."""
    start: float
    duration: float
    model: str = ""
    first_token: Optional[float] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class StepTiming:
    step: int
    model_call: Optional[ModelTiming] = None
    tools: List[ToolTiming] = field(default_factory=list)


@dataclass
class TimingRecord:
    request_id: str
    timestamp: str
    mode: str
    steps: List[StepTiming] = field(default_factory=list)
    total_duration: float = 0.0
    outcome: str = "finished"

    def to_dict(self) -> Dict[str, Any]:
        model_duration = sum(s.model_call.duration for s in self.steps if s.model_call)
        tool_duration = sum(t.duration for s in self.steps for t in s.tools)
        return {
            "request_id": self.request_id,
            "timestamp": self.timestamp,
            "mode": self.mode,
            "outcome": self.outcome,
            "steps": [asdict(s) for s in self.steps],
            "summary": {
                "total_duration": round(self.total_duration, 3),
                "model_duration": round(model_duration, 3),
                "tool_duration": round(tool_duration, 3),
                "num_steps": len(self.steps),
                "num_tools_called": sum(len(s.tools) for s in self.steps),
            },
        }


class _ModelContext:
    def __init__(self, collector: "TimingCollector"):
        self._collector = collector
        self.first_token: Optional[float] = None
        self.prompt_tokens = 0
        self.completion_tokens = 0

    def mark_first_token(self):
        if self.first_token is None:
            self.first_token = self._collector._elapsed()

    def set_tokens(self, prompt: int, completion: int):
        self.prompt_tokens = prompt
        self.completion_tokens = completion


class _ToolContext:
    def __init__(self):
        self.ok = True


class TimingCollector:
    """
    Collects timing for a single request.

    Usage:
        timing = TimingCollector(mode="live")
        step = timing.start_step(0)
        with timing.model_call(step, model="gpt-4.1-mini") as call:
            ...  # stream the model
            call.set_tokens(prompt=100, completion=50)
        with timing.tool_execution(step, "find_yield_strategies") as tool:
            ...  # run the tool
            tool.ok = result.get("success", True)
        timing.finalize()
    """

    def __init__(self, mode: str):
        self.start_time = time.perf_counter()
        self.record = TimingRecord(
            request_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            mode=mode,
        )
        self._finalized = False

    def _elapsed(self) -> float:
        return time.perf_counter() - self.start_time

    def start_step(self, step: int) -> StepTiming:
        timing = StepTiming(step=step)
        self.record.steps.append(timing)
        return timing

    @contextmanager
    def model_call(self, step: StepTiming, model: str = ""):
        start = self._elapsed()
        ctx = _ModelContext(self)
        try:
            yield ctx
        finally:
            step.model_call = ModelTiming(
                start=start,
                duration=self._elapsed() - start,
                model=model,
                first_token=ctx.first_token,
                prompt_tokens=ctx.prompt_tokens,
                completion_tokens=ctx.completion_tokens,
            )

    @contextmanager
    def tool_execution(self, step: StepTiming, tool_name: str):
        start = self._elapsed()
        ctx = _ToolContext()
        try:
            yield ctx
        finally:
            step.tools.append(ToolTiming(name=tool_name, start=start, duration=self._elapsed() - start, ok=ctx.ok))

    def finalize(self, outcome: str = "finished") -> Optional[Dict[str, Any]]:
        """Close the record once; later calls are ignored."""
        if self._finalized:
            return None
        self._finalized = True
        self.record.total_duration = self._elapsed()
        self.record.outcome = outcome
        record_dict = self.record.to_dict()
        _recent_records.append(record_dict)
        logger.debug(
            "Request %s (%s): %.3fs over %d step(s)",
            self.record.request_id[:8], outcome, self.record.total_duration, len(self.record.steps),
        )
        if TIMING_MODE:
            _write_timing_record(record_dict)
        return record_dict


def _write_timing_record(record: Dict[str, Any]):
    """Append a timing record to the JSONL file."""
    try:
        output_path = Path(TIMING_OUTPUT_FILE)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
    except OSError as e:
        logger.warning("Could not write timing record: %s", e)


def get_recent_records(n: Optional[int] = None) -> List[Dict[str, Any]]:
    """Get the N most recent timing records. If n is None, return all."""
    if n is None:
        return list(_recent_records)
    return list(_recent_records)[-n:]


def clear_records():
    _recent_records.clear()
