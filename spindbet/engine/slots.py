"""3x3 slot machine: weighted reels, paylines and paytable.

Grid layout (row-major, reels are columns):

    0 1 2      row 0
    3 4 5      row 1
    6 7 8      row 2

A reel's three stops fill one column. A payline pays when all three of
its cells show the same symbol; payouts of several lines add up.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from spindbet.engine.provably_fair import ProvablyFair

ROWS = 3
REELS = 3


@dataclass(frozen=True)
class Symbol:
    name: str
    glyph: str
    weight: int
    multiplier: Decimal  # paid for three on a line


# Ordered from most to least common
SYMBOLS: tuple[Symbol, ...] = (
    Symbol("cherry", "🍒", 40, Decimal("2")),
    Symbol("lemon", "🍋", 30, Decimal("4")),
    Symbol("bell", "🔔", 15, Decimal("8")),
    Symbol("bar", "BAR", 10, Decimal("15")),
    Symbol("money_bag", "💰", 5, Decimal("50")),
)

# Cell indexes into the row-major grid
PAYLINES: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 4, 8),
    (2, 4, 6),
)


@dataclass(frozen=True)
class LineWin:
    line: int  # index into PAYLINES
    symbol: int  # index into SYMBOLS
    multiplier: Decimal


@dataclass
class SlotEvaluation:
    payout: Decimal
    winning_lines: list[LineWin] = field(default_factory=list)

    @property
    def multiplier(self) -> Decimal:
        return sum((win.multiplier for win in self.winning_lines), Decimal("0"))


def total_weight(symbols: tuple[Symbol, ...] = SYMBOLS) -> int:
    return sum(symbol.weight for symbol in symbols)


def pick_symbol(point: int, symbols: tuple[Symbol, ...] = SYMBOLS) -> int:
    """Map a point in [0, total_weight) onto a symbol index."""
    cumulative = 0
    for index, symbol in enumerate(symbols):
        cumulative += symbol.weight
        if point < cumulative:
            return index
    raise ValueError(f"point {point} outside weight range {cumulative}")


def reel_tag(reel: int, row: int) -> str:
    return f"slots:reel:{reel}:row:{row}"


def reel_stops(server_seed: str, client_seed: str, reel: int) -> list[int]:
    """Symbol indexes for the three rows of one reel, top to bottom."""
    if not 0 <= reel < REELS:
        raise ValueError(f"reel must be in [0, {REELS}), got {reel}")

    weight = total_weight()
    return [
        pick_symbol(ProvablyFair.derive_int(server_seed, client_seed, reel_tag(reel, row), weight))
        for row in range(ROWS)
    ]


def build_grid(reels: list[list[int]]) -> list[int]:
    """Flatten per-reel columns into the row-major 9-cell grid."""
    if len(reels) != REELS or any(len(stops) != ROWS for stops in reels):
        raise ValueError("a full grid needs 3 reels of 3 stops")
    return [reels[reel][row] for row in range(ROWS) for reel in range(REELS)]


def evaluate_grid(grid: list[int], stake: Decimal) -> SlotEvaluation:
    """Apply the paytable to every payline."""
    winning_lines: list[LineWin] = []
    for line_index, (a, b, c) in enumerate(PAYLINES):
        if grid[a] == grid[b] == grid[c]:
            winning_lines.append(
                LineWin(
                    line=line_index,
                    symbol=grid[a],
                    multiplier=SYMBOLS[grid[a]].multiplier,
                )
            )

    evaluation = SlotEvaluation(payout=Decimal("0"), winning_lines=winning_lines)
    evaluation.payout = stake * evaluation.multiplier
    return evaluation


def render_grid(grid: list[int]) -> str:
    rows = [grid[row * REELS:(row + 1) * REELS] for row in range(ROWS)]
    return "\n".join(" ".join(SYMBOLS[index].glyph for index in row) for row in rows)


def verify_slot_round(
    server_seed: str,
    server_seed_hash: str,
    client_seed: str,
    reels: list[list[int]],
    stake: Decimal,
    payout: Decimal,
) -> tuple[bool, str | None]:
    """
    Client-side fairness check for a settled slot round.

    Returns:
        (success, error_message)
    """
    if not ProvablyFair.verify_commitment(server_seed, server_seed_hash):
        return False, "Server seed hash mismatch"

    for reel, stops in enumerate(reels):
        if reel_stops(server_seed, client_seed, reel) != stops:
            return False, f"Reel {reel} mismatch"

    evaluation = evaluate_grid(build_grid(reels), stake)
    if evaluation.payout != payout:
        return False, f"Payout mismatch: expected {evaluation.payout}, got {payout}"

    return True, None
