"""Model-driven replies with tool calling.

One request runs a bounded loop: stream a model round, forward its text as
it arrives, execute any requested tools through the request's ``Toolbox``,
feed the results back, and repeat until the model answers without tools.
Each model round is one protocol step.
"""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Sequence

from . import config
from .adapters import llm
from .models import ChatMessage
from .observability.timing import TimingCollector
from .streaming import UIMessageStreamWriter
from .tools.catalog import TOOLS, Toolbox

logger = logging.getLogger(__name__)

# Provider finish reasons -> protocol finish reasons
FINISH_REASONS = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "content_filter": "content-filter",
}


def _tool_input(arguments: str):
    """Best-effort decode of raw tool arguments for the client frame."""
    try:
        return json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return arguments


class LiveOrchestrator:
    mode = "live"

    def __init__(
        self,
        messages: Sequence[ChatMessage],
        wallet_address: Optional[str],
        balances: Sequence[dict],
        positions: Sequence[dict],
        max_steps: int = config.MAX_TOOL_STEPS,
        max_tokens: int = config.MAX_OUTPUT_TOKENS,
    ):
        self.messages = list(messages)
        self.wallet_address = wallet_address
        self.balances = list(balances)
        self.positions = list(positions)
        self.toolbox = Toolbox(self.balances, self.positions)
        self.max_steps = max_steps
        self.max_tokens = max_tokens

    def build_conversation(self) -> List[dict]:
        system = llm.build_system_prompt(self.wallet_address, self.balances, self.positions)
        return [{"role": "system", "content": system}] + llm.to_model_messages(self.messages)

    async def stream(self) -> AsyncIterator[str]:
        writer = UIMessageStreamWriter()
        timing = TimingCollector(mode=self.mode)
        conversation = self.build_conversation()
        finish_reason = "stop"
        text_blocks = 0

        yield writer.start()
        try:
            for step in range(self.max_steps):
                yield writer.start_step()
                step_timing = timing.start_step(step)
                text_id = None
                tool_calls = None
                message = None

                with timing.model_call(step_timing, model=llm.MODEL) as call:
                    async with aclosing(llm.run_chat_stream(conversation, TOOLS, self.max_tokens)) as chunks:
                        async for chunk in chunks:
                            if chunk["type"] == "content":
                                call.mark_first_token()
                                if text_id is None:
                                    text_blocks += 1
                                    text_id = f"text-{text_blocks}"
                                    yield writer.text_start(text_id)
                                yield writer.text_delta(text_id, chunk["delta"])
                            elif chunk["type"] == "tool_calls":
                                tool_calls = chunk["tool_calls"]
                            elif chunk["type"] == "done":
                                message = chunk["message"]
                                finish_reason = FINISH_REASONS.get(chunk["finish_reason"], "other")
                                usage = chunk.get("usage") or {}
                                call.set_tokens(usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0))

                if text_id is not None:
                    yield writer.text_end(text_id)

                if not tool_calls:
                    yield writer.finish_step()
                    break

                conversation.append(message)
                for tc in tool_calls:
                    func = tc.get("function") or {}
                    tool_name = func.get("name", "")
                    args_str = func.get("arguments", "{}")
                    logger.debug("Tool call %s(%s)", tool_name, args_str)

                    yield writer.tool_input_available(tc.get("id"), tool_name, _tool_input(args_str))
                    with timing.tool_execution(step_timing, tool_name) as tool:
                        result = self.toolbox.execute(tool_name, args_str)
                        tool.ok = result.get("success", True) is not False
                    yield writer.tool_output_available(tc.get("id"), result)

                    conversation.append({
                        "role": "tool",
                        "tool_call_id": tc.get("id"),
                        "content": json.dumps(result),
                    })
                yield writer.finish_step()
            else:
                logger.warning("Stopped after %d tool step(s) without a final answer", self.max_steps)
        except Exception as e:
            logger.error("Live stream failed: %s", e, exc_info=config.DEBUG_ENABLED)
            timing.finalize(outcome="error")
            for frame in writer.abort(str(e)):
                yield frame
            return

        timing.finalize()
        yield writer.finish(finish_reason)
