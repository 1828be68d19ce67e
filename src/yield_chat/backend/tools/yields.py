"""Yield-farming domain functions backing the chat tools.

Everything here is a synchronous, pure function of its arguments plus the
caller-supplied mock snapshot. Nothing performs network I/O or mutates the
snapshot; deposit math is a projection only.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from ..errors import InvalidAmount, NotFound, UnsupportedToken
from ..models import Strategy


STRATEGIES: tuple[Strategy, ...] = (
    Strategy(
        id="aave-usdc-lending",
        name="USDC Lending",
        protocol="Aave",
        apy=4.2,
        riskLevel="Low",
        tokens=["USDC"],
        category="lending",
        tvlUSD=1_250_000_000,
        description="Supply USDC to the Aave money market and earn variable interest from borrowers.",
    ),
    Strategy(
        id="compound-usdt-lending",
        name="USDT Lending",
        protocol="Compound",
        apy=3.8,
        riskLevel="Low",
        tokens=["USDT"],
        category="lending",
        tvlUSD=640_000_000,
        description="Lend USDT on Compound; interest accrues every block.",
    ),
    Strategy(
        id="curve-3pool",
        name="Stablecoin 3pool",
        protocol="Curve",
        apy=5.1,
        riskLevel="Low",
        tokens=["USDC", "USDT", "DAI"],
        category="liquidity",
        tvlUSD=410_000_000,
        description="Provide liquidity to the DAI/USDC/USDT pool and earn swap fees plus CRV rewards.",
    ),
    Strategy(
        id="yearn-dai-vault",
        name="DAI Vault",
        protocol="Yearn",
        apy=6.3,
        riskLevel="Medium",
        tokens=["DAI"],
        category="vault",
        tvlUSD=95_000_000,
        description="Auto-compounding vault that rotates DAI between lending markets.",
    ),
    Strategy(
        id="lido-eth-staking",
        name="ETH Liquid Staking",
        protocol="Lido",
        apy=3.4,
        riskLevel="Low",
        tokens=["ETH"],
        category="staking",
        tvlUSD=23_000_000_000,
        description="Stake ETH and receive stETH, which accrues validator rewards daily.",
    ),
    Strategy(
        id="balancer-wsteth-eth",
        name="wstETH/ETH Pool",
        protocol="Balancer",
        apy=8.7,
        riskLevel="Medium",
        tokens=["ETH", "WSTETH"],
        category="liquidity",
        tvlUSD=180_000_000,
        lockupDays=0,
        description="Correlated-asset pool combining staking yield with swap fees and BAL incentives.",
    ),
    Strategy(
        id="uniswap-eth-usdc",
        name="ETH/USDC Liquidity",
        protocol="Uniswap V3",
        apy=18.5,
        riskLevel="High",
        tokens=["ETH", "USDC"],
        category="liquidity",
        tvlUSD=320_000_000,
        description="Concentrated liquidity position; high fee income but exposed to impermanent loss.",
    ),
    Strategy(
        id="gmx-glp",
        name="GLP Index",
        protocol="GMX",
        apy=14.2,
        riskLevel="High",
        tokens=["USDC", "ETH", "WBTC"],
        category="vault",
        tvlUSD=410_000_000,
        lockupDays=1,
        description="Act as the counterparty to perpetual traders; returns depend on trader PnL.",
    ),
    Strategy(
        id="aave-wbtc-lending",
        name="WBTC Lending",
        protocol="Aave",
        apy=0.9,
        riskLevel="Low",
        tokens=["WBTC"],
        category="lending",
        tvlUSD=820_000_000,
        description="Supply WBTC for a small but steady lending yield.",
    ),
)

TOKEN_INFO: Dict[str, dict] = {
    "USDC": {"category": "stablecoin", "description": "Fiat-backed dollar stablecoin issued by Circle.", "volatility": "Low"},
    "USDT": {"category": "stablecoin", "description": "Fiat-backed dollar stablecoin issued by Tether.", "volatility": "Low"},
    "DAI": {"category": "stablecoin", "description": "Crypto-collateralized dollar stablecoin governed by MakerDAO.", "volatility": "Low"},
    "ETH": {"category": "blue-chip", "description": "Native asset of Ethereum, used for gas and staking.", "volatility": "High"},
    "WBTC": {"category": "blue-chip", "description": "Bitcoin wrapped as an ERC-20 token.", "volatility": "High"},
    "WSTETH": {"category": "liquid-staking", "description": "Wrapped staked ETH that accrues staking rewards.", "volatility": "High"},
    "CRV": {"category": "governance", "description": "Curve governance token, often earned as a reward.", "volatility": "Very High"},
}

RISK_NOTES: Dict[str, List[str]] = {
    "Low": ["Smart contract risk", "Variable rates can drop"],
    "Medium": ["Smart contract risk", "Strategy rebalancing risk", "Reward token price exposure"],
    "High": ["Impermanent loss", "Smart contract risk", "High volatility of underlying assets"],
}

# Flat simulated network fee per protocol interaction
ESTIMATED_GAS_USD = Decimal("2.50")

_CENT = Decimal("0.01")
_UNIT = Decimal("0.000001")
# Largest accepted deposit is below 10**(MAX_AMOUNT_EXPONENT + 1) token units
MAX_AMOUNT_EXPONENT = 15


def to_number(value) -> float:
    """Coerce snapshot numbers; anything non-numeric counts as 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _find_strategy(strategy_id: str) -> Strategy:
    for strategy in STRATEGIES:
        if strategy.id == strategy_id:
            return strategy
    raise NotFound(f"Strategy '{strategy_id}' not found")


def get_wallet_balances(balances: Sequence[dict]) -> dict:
    normalized = []
    for item in balances:
        token = item.get("token") if isinstance(item.get("token"), dict) else {}
        normalized.append({
            "token": {
                "symbol": token.get("symbol") or "TOKEN",
                "address": token.get("address"),
                "decimals": token.get("decimals"),
            },
            "balance": str(item.get("balance", "0")),
            "valueUSD": to_number(item.get("valueUSD")),
        })
    total = sum(b["valueUSD"] for b in normalized)
    return {"totalValueUSD": total, "balances": normalized, "count": len(normalized)}


def classify_tokens(tokens: Optional[Sequence[str]] = None) -> dict:
    symbols = list(tokens) if tokens else list(TOKEN_INFO)
    classified = []
    for symbol in symbols:
        info = TOKEN_INFO.get(symbol.upper())
        if info is None:
            info = {"category": "unknown", "description": "No classification available for this token.", "volatility": "Unknown"}
        classified.append({"symbol": symbol, **info})
    return {"tokens": classified}


def find_yield_strategies(
    tokens: Optional[Sequence[str]] = None,
    min_apy: Optional[float] = None,
    risk_level: Optional[str] = None,
) -> dict:
    """Filter the strategy catalog; empty filters are unconstrained.

    Results are ordered by descending APY (stable).
    """
    wanted = {t.upper() for t in tokens} if tokens else None
    matches = []
    for strategy in STRATEGIES:
        if wanted is not None and not wanted.intersection(strategy.tokens):
            continue
        if min_apy is not None and strategy.apy < min_apy:
            continue
        if risk_level is not None and strategy.riskLevel != risk_level:
            continue
        matches.append(strategy)
    matches.sort(key=lambda s: s.apy, reverse=True)
    return {"strategies": matches, "count": len(matches)}


def get_strategy_details(strategy_id: str) -> dict:
    strategy = _find_strategy(strategy_id)
    return {
        "strategy": strategy.model_dump(),
        "risks": RISK_NOTES[strategy.riskLevel],
    }


def _parse_amount(amount: str) -> Decimal:
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise InvalidAmount(f"Amount '{amount}' is not a number")
    if not value.is_finite() or value <= 0:
        raise InvalidAmount(f"Amount must be a positive number, got '{amount}'")
    if value.adjusted() > MAX_AMOUNT_EXPONENT:
        raise InvalidAmount(f"Amount '{amount}' is too large")
    return value


def _fmt(value: Decimal) -> str:
    return format(value.quantize(_UNIT, rounding=ROUND_HALF_UP).normalize(), "f")


def preview_deposit(strategy_id: str, amount: str, token_symbol: str) -> dict:
    """Project the returns of a deposit without committing anything."""
    strategy = _find_strategy(strategy_id)
    value = _parse_amount(amount)
    symbol = token_symbol.upper()
    if symbol not in strategy.tokens:
        raise UnsupportedToken(
            f"{strategy.name} accepts {', '.join(strategy.tokens)}, not {token_symbol}"
        )

    yearly = value * Decimal(str(strategy.apy)) / Decimal(100)
    warnings = ["Simulated transaction on testnet; no real funds move."]
    if strategy.riskLevel == "High":
        warnings.append("High-risk strategy: returns are volatile and principal can shrink.")
    if strategy.category == "liquidity":
        warnings.append("Liquidity positions are exposed to impermanent loss.")
    if strategy.lockupDays:
        warnings.append(f"Withdrawals are locked for {strategy.lockupDays} day(s) after deposit.")

    return {
        "strategyId": strategy.id,
        "strategyName": strategy.name,
        "protocol": strategy.protocol,
        "amount": _fmt(value),
        "tokenSymbol": symbol,
        "apy": strategy.apy,
        "riskLevel": strategy.riskLevel,
        "estimatedYield": {
            "daily": _fmt(yearly / Decimal(365)),
            "monthly": _fmt(yearly / Decimal(12)),
            "yearly": _fmt(yearly),
        },
        "estimatedGasUSD": float(ESTIMATED_GAS_USD.quantize(_CENT)),
        "lockupDays": strategy.lockupDays,
        "warnings": warnings,
        "simulated": True,
    }


def get_positions(positions: Sequence[dict]) -> dict:
    by_id = {s.id: s for s in STRATEGIES}
    enriched = []
    for position in positions:
        item = dict(position)
        strategy_id = position.get("strategyId")
        strategy = by_id.get(strategy_id) if isinstance(strategy_id, str) else None
        if strategy is not None:
            item.setdefault("strategyName", strategy.name)
            item.setdefault("protocol", strategy.protocol)
            item.setdefault("apy", strategy.apy)
        if "depositedValue" in position:
            item["earnedUSD"] = round(
                to_number(position.get("currentValue")) - to_number(position.get("depositedValue")), 2
            )
        enriched.append(item)
    total = sum(to_number(p.get("currentValue")) for p in positions)
    return {"positions": enriched, "count": len(enriched), "totalValueUSD": total}
