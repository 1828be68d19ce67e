import json
from typing import List, Dict, Optional, Sequence, AsyncIterator

import openai
from openai import AsyncOpenAI

from .. import config
from ..errors import UpstreamFailure
from ..models import ChatMessage

MODEL = config.MODEL

# History roles replayed to the model; system and unknown roles are dropped
CHAT_ROLES = {"user", "assistant", "tool"}

SYSTEM_PROMPT = """You are a helpful and knowledgeable DeFi yield farming assistant. Your role is to help users understand yield farming, discover opportunities, and manage their positions.

Key guidelines:
- Be friendly and educational, especially for users new to DeFi
- Explain concepts clearly without being condescending
- When a wallet is connected, use the available tools to provide personalized recommendations
- Always mention risks when discussing strategies
- Use the preview_deposit tool before executing any deposits
- Format numbers clearly (e.g., "5.2% APY", "$1,234.56")
- When showing strategies, highlight the key differences (APY, risk level, protocol)

Remember:
- This is a demo/prototype with simulated transactions
- All transactions are on testnet (no real money)
- Tool calls help provide rich, interactive experiences
- Deposits and withdrawals are confirmed by the user in the app, not by you. If execute_deposit or withdraw_from_position report that the action must happen client-side, tell the user to confirm it in the app.

When wallet is NOT connected:
- Provide general educational content about yield farming
- Explain different strategies and protocols
- Encourage users to connect their wallet for personalized recommendations

When wallet IS connected:
- Use tools to read balances and suggest strategies based on their actual holdings
- Provide specific, actionable recommendations
- Guide users through deposit and withdrawal flows step by step"""


def build_system_prompt(wallet_address: Optional[str], balances: Sequence[dict], positions: Sequence[dict]) -> str:
  """Append the per-request wallet block to the fixed persona prompt."""
  if wallet_address:
    return SYSTEM_PROMPT + f"""

Wallet Status: CONNECTED
Connected Address: {wallet_address}
Available Balances: {json.dumps(list(balances))}
Active Positions: {len(positions)} position(s)

Use the available tools to help this user manage their yield farming positions."""
  return SYSTEM_PROMPT + """

Wallet Status: NOT CONNECTED
Provide general information and encourage the user to connect their wallet for personalized recommendations."""


def to_model_messages(messages: Sequence[ChatMessage]) -> List[Dict]:
  """Convert client chat history to chat-completions messages.

  Earlier tool results have no matching tool_call id on this side, so they are
  replayed as assistant notes instead of ``tool`` messages.
  """
  converted = []
  for m in messages:
    text = m.text()
    if m.role not in CHAT_ROLES:
      continue
    if m.role == "tool":
      label = m.tool_name or "tool"
      converted.append({"role": "assistant", "content": f"[{label} result] {text}"})
    else:
      converted.append({"role": m.role, "content": text})
  return converted


async def run_chat_stream(messages: List[Dict], tools: List[Dict], max_tokens: int = config.MAX_OUTPUT_TOKENS) -> AsyncIterator[Dict]:
  """Stream chat completions token by token.

  Yields:
    Dict with 'type' field indicating chunk type:
    - {"type": "content", "delta": str} - text content chunk
    - {"type": "tool_calls", "tool_calls": [...]} - complete tool calls
    - {"type": "done", "message": dict, "finish_reason": str, "usage": dict} - final message

  Raises UpstreamFailure for any provider error. The provider stream is
  closed however the caller stops iterating.
  """
  api_key = config.get_api_key()
  if api_key is None:
    raise UpstreamFailure(f"{config.API_KEY_ENV} is not configured")

  client = AsyncOpenAI(api_key=api_key)
  stream = None
  try:
    stream = await client.chat.completions.create(
      model=MODEL,
      messages=messages,
      tools=tools,
      tool_choice="auto",
      max_completion_tokens=max_tokens,
      stream=True,
      stream_options={"include_usage": True},
    )

    # Accumulate the full response as we stream
    accumulated_content = ""
    accumulated_tool_calls = []
    finish_reason = None
    usage = {}

    async for chunk in stream:
      if getattr(chunk, "usage", None):
        usage = {
          "prompt_tokens": chunk.usage.prompt_tokens,
          "completion_tokens": chunk.usage.completion_tokens,
          "total_tokens": chunk.usage.total_tokens,
        }
      if not chunk.choices:
        continue

      delta = chunk.choices[0].delta
      if chunk.choices[0].finish_reason:
        finish_reason = chunk.choices[0].finish_reason

      # Stream content tokens
      if delta.content:
        accumulated_content += delta.content
        yield {"type": "content", "delta": delta.content}

      # Accumulate tool calls (they come in pieces)
      if delta.tool_calls:
        for tc_delta in delta.tool_calls:
          idx = tc_delta.index
          while len(accumulated_tool_calls) <= idx:
            accumulated_tool_calls.append({"id": "", "type": "function", "function": {"name": "", "arguments": ""}})

          if tc_delta.id:
            accumulated_tool_calls[idx]["id"] = tc_delta.id
          if tc_delta.function:
            if tc_delta.function.name:
              accumulated_tool_calls[idx]["function"]["name"] = tc_delta.function.name
            if tc_delta.function.arguments:
              accumulated_tool_calls[idx]["function"]["arguments"] += tc_delta.function.arguments

    final_message = {"role": "assistant", "content": accumulated_content or None}
    if accumulated_tool_calls:
      final_message["tool_calls"] = accumulated_tool_calls
      yield {"type": "tool_calls", "tool_calls": accumulated_tool_calls}

    yield {"type": "done", "message": final_message, "finish_reason": finish_reason or "stop", "usage": usage}
  except openai.OpenAIError as e:
    raise UpstreamFailure(str(e)) from e
  finally:
    if stream is not None:
      await stream.close()
    await client.close()
