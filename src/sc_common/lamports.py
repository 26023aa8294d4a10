"""Integer arithmetic utilities for lamport-denominated amounts.

All stakes, fees, proceeds and P&L are int lamports (1 SOL = 10**9).
Token amounts are int base units. Prices are the only Decimal values.
"""

from decimal import Decimal

LAMPORTS_PER_SOL = 1_000_000_000


def sol_to_lamports(sol: Decimal | str) -> int:
    """Convert a SOL amount to lamports, truncating sub-lamport dust."""
    return int(Decimal(sol) * LAMPORTS_PER_SOL)


def lamports_to_display(lamports: int) -> str:
    """Render lamports: 50_000_000 -> '0.050000000 SOL', -1 -> '-0.000000001 SOL'."""
    sign = "-" if lamports < 0 else ""
    whole, frac = divmod(abs(lamports), LAMPORTS_PER_SOL)
    return f"{sign}{whole:,}.{frac:09d} SOL"


def apportion(total: int, weights: list[int]) -> list[int]:
    """Split `total` proportionally to `weights` so the parts sum to `total` exactly.

    Largest-remainder method: every part gets floor(total * w / W), then the
    leftover units go one each to the largest fractional remainders (ties
    broken by position). Zero total weight yields all zeros.
    """
    if total < 0:
        raise ValueError(f"total must be >= 0, got {total}")
    if any(w < 0 for w in weights):
        raise ValueError("weights must be >= 0")
    weight_sum = sum(weights)
    if weight_sum == 0 or total == 0:
        return [0] * len(weights)

    parts = []
    remainders = []
    for i, w in enumerate(weights):
        q, r = divmod(total * w, weight_sum)
        parts.append(q)
        remainders.append((r, -i))

    leftover = total - sum(parts)
    for _, neg_i in sorted(remainders, reverse=True)[:leftover]:
        parts[-neg_i] += 1
    return parts


def price(numerator: int, denominator: int) -> Decimal | None:
    """Lamports per token base unit; None when the denominator is zero."""
    if denominator == 0:
        return None
    return Decimal(numerator) / Decimal(denominator)
