"""Tool catalog exposed to the model, and the per-request dispatcher.

``TOOLS`` is the OpenAI function-calling schema; the matching pydantic input
models live in ``models``. A ``Toolbox`` is built once per request with that
request's mock balances and positions bound, and every call goes through
``Toolbox.execute`` which never raises for a failed call: schema violations
and domain errors come back as ``{"success": False, ...}`` results.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Sequence, Type, Union

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from ..errors import ToolDomainError, ToolInputInvalid
from ..models import (
    ClassifyTokens,
    ExecuteDeposit,
    FindYieldStrategies,
    GetPositions,
    GetStrategyDetails,
    GetWalletBalances,
    PreviewDeposit,
    WithdrawFromPosition,
)
from . import yields
from .constants import is_mutating_tool

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    GET_WALLET_BALANCES = "get_wallet_balances"
    CLASSIFY_TOKENS = "classify_tokens"
    FIND_YIELD_STRATEGIES = "find_yield_strategies"
    GET_STRATEGY_DETAILS = "get_strategy_details"
    PREVIEW_DEPOSIT = "preview_deposit"
    EXECUTE_DEPOSIT = "execute_deposit"
    GET_POSITIONS = "get_positions"
    WITHDRAW_FROM_POSITION = "withdraw_from_position"


TOOL_INPUTS: Dict[ToolName, Type[BaseModel]] = {
    ToolName.GET_WALLET_BALANCES: GetWalletBalances,
    ToolName.CLASSIFY_TOKENS: ClassifyTokens,
    ToolName.FIND_YIELD_STRATEGIES: FindYieldStrategies,
    ToolName.GET_STRATEGY_DETAILS: GetStrategyDetails,
    ToolName.PREVIEW_DEPOSIT: PreviewDeposit,
    ToolName.EXECUTE_DEPOSIT: ExecuteDeposit,
    ToolName.GET_POSITIONS: GetPositions,
    ToolName.WITHDRAW_FROM_POSITION: WithdrawFromPosition,
}

ToolInput = Union[
    GetWalletBalances,
    ClassifyTokens,
    FindYieldStrategies,
    GetStrategyDetails,
    PreviewDeposit,
    ExecuteDeposit,
    GetPositions,
    WithdrawFromPosition,
]

_DEPOSIT_PARAMS = {
    "type": "object",
    "properties": {
        "strategyId": {"type": "string", "description": "Strategy id from find_yield_strategies"},
        "amount": {"type": "string", "description": "Amount in token units as a decimal string, e.g. '250.5'"},
        "tokenSymbol": {"type": "string", "description": "Symbol of the token to deposit, e.g. 'USDC'"},
    },
    "required": ["strategyId", "amount", "tokenSymbol"],
    "additionalProperties": False,
}

# Schemas must match the pydantic models in models.py
TOOLS: List[dict] = [
    {
        "type": "function",
        "function": {
            "name": "get_wallet_balances",
            "description": "Get token balances for the connected wallet",
            "parameters": {"type": "object", "properties": {}, "additionalProperties": False},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "classify_tokens",
            "description": "Get educational info about token classifications",
            "parameters": {
                "type": "object",
                "properties": {
                    "tokens": {"type": "array", "items": {"type": "string"}, "description": "Token symbols; omit for all known tokens"},
                },
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "find_yield_strategies",
            "description": "Find yield farming strategies, sorted by APY. Omitted filters are unconstrained.",
            "parameters": {
                "type": "object",
                "properties": {
                    "tokens": {"type": "array", "items": {"type": "string"}},
                    "minAPY": {"type": "number", "description": "Minimum APY in percent"},
                    "riskLevel": {"type": "string", "enum": ["Low", "Medium", "High"]},
                },
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_strategy_details",
            "description": "Get detailed info about a specific strategy",
            "parameters": {
                "type": "object",
                "properties": {"strategyId": {"type": "string"}},
                "required": ["strategyId"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "preview_deposit",
            "description": "Preview a deposit transaction (projected yield, fees, warnings). Nothing is executed.",
            "parameters": _DEPOSIT_PARAMS,
        },
    },
    {
        "type": "function",
        "function": {
            "name": "execute_deposit",
            "description": "Execute a deposit (simulated). Always previewed first.",
            "parameters": _DEPOSIT_PARAMS,
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_positions",
            "description": "Get all active positions",
            "parameters": {"type": "object", "properties": {}, "additionalProperties": False},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "withdraw_from_position",
            "description": "Withdraw from a position (simulated)",
            "parameters": {
                "type": "object",
                "properties": {"positionId": {"type": "string"}},
                "required": ["positionId"],
                "additionalProperties": False,
            },
        },
    },
]


def _failure(error: str, error_type: str) -> dict:
    return {"success": False, "error": error, "errorType": error_type}


def _unsupported(action: str) -> dict:
    return _failure(f"Use client-side {action} action", "UnsupportedAction")


def parse_tool_input(name: str, arguments: Union[str, dict, None]) -> ToolInput:
    """Resolve a tool name and validate its arguments.

    Raises ToolInputInvalid for unknown names, undecodable JSON or schema
    violations.
    """
    try:
        tool = ToolName(name)
    except ValueError:
        raise ToolInputInvalid(f"Unknown tool {name}")

    if arguments is None or arguments == "":
        arguments = {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ToolInputInvalid(f"Arguments for {name} are not valid JSON: {e}")
    if not isinstance(arguments, dict):
        raise ToolInputInvalid(f"Arguments for {name} must be an object")

    try:
        return TOOL_INPUTS[tool].model_validate(arguments)
    except ValidationError as e:
        raise ToolInputInvalid(f"Invalid arguments for {name}: {e.errors(include_url=False)}")


class Toolbox:
    """The tool set for one request, with the caller's snapshot bound."""

    def __init__(self, balances: Sequence[dict] = (), positions: Sequence[dict] = ()):
        self.balances = list(balances)
        self.positions = list(positions)

    def execute(self, name: str, arguments: Union[str, dict, None] = None) -> Dict[str, Any]:
        try:
            params = parse_tool_input(name, arguments)
            if is_mutating_tool(name):
                logger.info("Refusing server-side %s; the client executes mutations", name)
            result = self._run(params)
        except ToolInputInvalid as e:
            logger.warning("Tool %s rejected input: %s", name, e)
            return _failure(str(e), "ToolInputInvalid")
        except ToolDomainError as e:
            logger.info("Tool %s failed: %s", name, e)
            return _failure(str(e), type(e).__name__)
        return to_jsonable_python(result)

    def _run(self, params: ToolInput) -> Any:
        match params:
            case GetWalletBalances():
                return yields.get_wallet_balances(self.balances)
            case ClassifyTokens(tokens=tokens):
                return yields.classify_tokens(tokens)
            case FindYieldStrategies(tokens=tokens, minAPY=min_apy, riskLevel=risk_level):
                return yields.find_yield_strategies(tokens, min_apy, risk_level)
            case GetStrategyDetails(strategyId=strategy_id):
                return yields.get_strategy_details(strategy_id)
            case PreviewDeposit(strategyId=strategy_id, amount=amount, tokenSymbol=symbol):
                return yields.preview_deposit(strategy_id, amount, symbol)
            case ExecuteDeposit():
                return _unsupported("deposit")
            case WithdrawFromPosition():
                return _unsupported("withdraw")
            case GetPositions():
                return yields.get_positions(self.positions)
        raise ToolInputInvalid(f"No handler for {type(params).__name__}")
