from typing import Optional, Literal, List, Any, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


RiskLevel = Literal["Low", "Medium", "High"]


class Strategy(BaseModel):
    """A yield strategy as returned by the strategy search."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    protocol: str
    apy: float
    riskLevel: RiskLevel
    tokens: List[str]
    category: Literal["lending", "staking", "liquidity", "vault"]
    tvlUSD: float
    lockupDays: int = 0
    description: str = ""


# Chat
class MessagePart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""
    text: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value):
        return value if isinstance(value, str) else ""

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return value if isinstance(value, str) else None


def _objects_only(value: Any) -> Any:
    # Non-object entries carry nothing usable
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return value


class ChatMessage(BaseModel):
    """One history entry; unknown roles and shapes are tolerated, not rejected."""
    model_config = ConfigDict(extra="allow")

    role: str = "user"
    content: Union[str, List[MessagePart], None] = None  # AI SDK clients may send a list of parts here
    parts: Optional[List[MessagePart]] = None  # UI clients send text as parts
    tool_name: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value):
        return value if isinstance(value, str) else ""

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value):
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, list):
            return _objects_only(value)
        return str(value)

    @field_validator("parts", mode="before")
    @classmethod
    def _coerce_parts(cls, value):
        return _objects_only(value) if isinstance(value, list) else None

    @field_validator("tool_name", mode="before")
    @classmethod
    def _coerce_tool_name(cls, value):
        return value if isinstance(value, str) else None

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        parts = self.content if self.content else self.parts
        if parts:
            return "".join(p.text or "" for p in parts if p.type == "text")
        return ""


class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    walletAddress: Optional[str] = None
    # Mock snapshots stay loosely typed: the caller owns their shape and the
    # aggregation helpers tolerate missing or non-numeric fields.
    mockBalances: Optional[Any] = None
    positions: Optional[Any] = None

    @field_validator("messages", mode="before")
    @classmethod
    def _drop_non_object_messages(cls, value):
        return _objects_only(value)

    @field_validator("walletAddress", mode="before")
    @classmethod
    def _coerce_wallet(cls, value):
        return value if isinstance(value, str) else None

    @property
    def balances_list(self) -> List[dict]:
        if not isinstance(self.mockBalances, list):
            return []
        return [item for item in self.mockBalances if isinstance(item, dict)]

    @property
    def positions_list(self) -> List[dict]:
        # Every entry counts as a position; junk entries have no fields
        if not isinstance(self.positions, list):
            return []
        return [item if isinstance(item, dict) else {} for item in self.positions]


# Tool inputs
class _ToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GetWalletBalances(_ToolInput):
    pass


class ClassifyTokens(_ToolInput):
    tokens: Optional[List[str]] = None


class FindYieldStrategies(_ToolInput):
    tokens: Optional[List[str]] = None
    minAPY: Optional[float] = None
    riskLevel: Optional[RiskLevel] = None


class GetStrategyDetails(_ToolInput):
    strategyId: str


class PreviewDeposit(_ToolInput):
    strategyId: str
    amount: str = Field(description="Decimal string in token units")
    tokenSymbol: str


class ExecuteDeposit(_ToolInput):
    strategyId: str
    amount: str
    tokenSymbol: str


class GetPositions(_ToolInput):
    pass


class WithdrawFromPosition(_ToolInput):
    positionId: str
