"""Structured proposal action text.

BUY token=<symbol|mint> [amount=<sol>] [price=market|target:<p>] [slippage=<pct>]
SELL order=<order_id>
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from src.sc_common.lamports import sol_to_lamports

_MINT_RE = re.compile(r"^[A-Za-z0-9]{32,44}$")
_ORDER_RE = re.compile(r"order[=:]?\s*([^\s]+)", re.IGNORECASE)
_TARGET_PRICE_RE = re.compile(r"^target:(\d+(?:\.\d+)?)$")


@dataclass(frozen=True)
class BuyAction:
    token: str                      # resolved mint address
    amount: int | None              # lamports
    price: Decimal | None           # None = market
    slippage_bps: int


def resolve_token(token: str, symbols: dict[str, str]) -> str | None:
    """Map a symbol to its mint, or accept something shaped like a mint address."""
    t = token.strip()
    mint = symbols.get(t.upper())
    if mint:
        return mint
    if _MINT_RE.match(t):
        return t
    return None


def _decimal(raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"not a number: {raw!r}") from None
    if not value.is_finite():
        raise ValueError(f"not a finite number: {raw!r}")
    return value


def _parse_price(raw: str | None) -> Decimal | None:
    """None means market. Anything other than a positive price raises ValueError."""
    if raw is None or raw.lower() == "market":
        return None
    m = _TARGET_PRICE_RE.match(raw.lower())
    value = _decimal(m.group(1) if m else raw)
    if value <= 0:
        raise ValueError(f"price must be positive, got {raw!r}")
    return value


def _parse_slippage(raw: str) -> int:
    """Percent to basis points, 0-100%."""
    pct = _decimal(raw)
    if not 0 <= pct <= 100:
        raise ValueError(f"slippage must be between 0 and 100%, got {raw!r}")
    return int(pct * 100)


def parse_buy_action(text: str, symbols: dict[str, str], default_slippage_bps: int) -> BuyAction | None:
    parts = text.strip().split()
    if not parts or parts[0].upper() != "BUY":
        return None

    data: dict[str, str] = {}
    for part in parts[1:]:
        key, sep, value = part.partition("=")
        if sep and key and value:
            data[key.lower()] = value

    if "token" not in data:
        return None
    mint = resolve_token(data["token"], symbols)
    if mint is None:
        return None

    try:
        amount = sol_to_lamports(_decimal(data["amount"])) if "amount" in data else None
        limit_price = _parse_price(data.get("price"))
        slippage_bps = (
            _parse_slippage(data["slippage"]) if "slippage" in data else default_slippage_bps
        )
    except ValueError:
        return None
    if amount is not None and amount <= 0:
        return None

    return BuyAction(
        token=mint,
        amount=amount,
        price=limit_price,
        slippage_bps=slippage_bps,
    )


def parse_sell_order_ref(text: str) -> str | None:
    parts = text.strip().split()
    if not parts or parts[0].upper() != "SELL":
        return None
    m = _ORDER_RE.search(text)
    return m.group(1).strip() if m else None
