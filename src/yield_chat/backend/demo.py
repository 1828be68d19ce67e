"""Scripted replies for when no model credential is configured.

The text is built from the same tool functions the model would call, so a
demo reply shows the user's real mock balances and the strategies the live
assistant would most likely suggest. Output is a pure function of the wallet
address, balances and positions.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional, Sequence

from .config import API_KEY_ENV
from .models import Strategy
from .streaming import UIMessageStreamWriter
from .tools import yields

logger = logging.getLogger(__name__)

DEMO_TEXT_ID = "text-1"
MAX_SUGGESTED_STRATEGIES = 3

RISK_DISCLAIMER = "This is a demo with simulated transactions. Always consider risks and impermanent loss."


def format_usd(value: float) -> str:
    return f"${value:,.2f}"


def abbreviate_address(address: str) -> str:
    if len(address) > 10:
        return f"{address[:6]}…{address[-4:]}"
    return address


def total_position_value(positions: Sequence[dict]) -> float:
    return sum(yields.to_number(p.get("currentValue")) for p in positions)


def select_top_strategies(strategies: Sequence[Strategy], limit: int = MAX_SUGGESTED_STRATEGIES) -> List[Strategy]:
    # sorted() is stable, so equal APYs keep their search order
    return sorted(strategies, key=lambda s: s.apy, reverse=True)[:limit]


def render_demo_text(
    wallet_address: Optional[str],
    balances: Sequence[dict],
    positions: Sequence[dict],
) -> str:
    lines = [f"Demo mode: {API_KEY_ENV} is not set, so responses are scripted."]

    if wallet_address:
        balances_result = yields.get_wallet_balances(balances)
        symbols = [
            b["token"]["symbol"] for b in balances
            if isinstance(b.get("token"), dict) and isinstance(b["token"].get("symbol"), str) and b["token"]["symbol"]
        ]
        strategy_result = yields.find_yield_strategies(tokens=symbols or None)
        suggested = select_top_strategies(strategy_result["strategies"])

        lines.append("")
        lines.append(f"Wallet: {abbreviate_address(wallet_address)}")
        lines.append(f"Total balance: {format_usd(balances_result['totalValueUSD'])}")

        lines.append("")
        if balances_result["balances"]:
            lines.append("Balances:")
            for b in balances_result["balances"]:
                lines.append(f"- {b['token']['symbol']}: {b['balance']} (~{format_usd(b['valueUSD'])})")
        else:
            lines.append("Balances: none yet. Connect a wallet to generate mock balances.")

        lines.append("")
        if positions:
            lines.append(
                f"Active positions: {len(positions)} (total {format_usd(total_position_value(positions))})"
            )
        else:
            lines.append("Active positions: none yet.")

        if suggested:
            lines.append("")
            lines.append("Suggested strategies:")
            for s in suggested:
                lines.append(f"- {s.name} ({s.protocol}) — {s.apy:.1f}% APY, {s.riskLevel} risk")
    else:
        lines.append("")
        lines.append(
            "Yield farming means putting tokens into protocols to earn rewards. "
            "Common strategies include lending, staking, and providing liquidity."
        )
        lines.append("Connect a wallet to see personalized mock balances and strategy suggestions.")

    lines.append("")
    lines.append(RISK_DISCLAIMER)
    return "\n".join(lines)


class DemoOrchestrator:
    """Streams one scripted text block; never contacts a model."""

    mode = "demo"

    def __init__(self, wallet_address: Optional[str], balances: Sequence[dict], positions: Sequence[dict]):
        self.wallet_address = wallet_address
        self.balances = list(balances)
        self.positions = list(positions)

    async def stream(self) -> AsyncIterator[str]:
        text = render_demo_text(self.wallet_address, self.balances, self.positions)
        logger.info("Demo reply: %d chars, wallet=%s", len(text), bool(self.wallet_address))

        writer = UIMessageStreamWriter()
        yield writer.start()
        yield writer.start_step()
        yield writer.text_start(DEMO_TEXT_ID)
        yield writer.text_delta(DEMO_TEXT_ID, text)
        yield writer.text_end(DEMO_TEXT_ID)
        yield writer.finish_step()
        yield writer.finish("stop")
