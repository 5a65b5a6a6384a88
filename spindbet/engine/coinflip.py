"""Coinflip outcome derivation."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from spindbet.engine.provably_fair import ProvablyFair

COINFLIP_TAG = "coinflip"
POINT_RANGE = 10000
WIN_MULTIPLIER = Decimal("2")


class CoinFace(str, Enum):
    HEADS = "heads"
    TAILS = "tails"

    def opposite(self) -> "CoinFace":
        return CoinFace.TAILS if self is CoinFace.HEADS else CoinFace.HEADS


@dataclass(frozen=True)
class CoinflipResult:
    face: CoinFace
    win: bool
    point: int  # derived value in [0, 10000)
    threshold: int  # player wins iff point < threshold


def win_threshold(house_edge: Decimal) -> int:
    """Points (out of 10000) that win for the player: (0.5 - edge) * 10000."""
    return int((Decimal("0.5") - house_edge) * POINT_RANGE)


def flip(
    server_seed: str,
    client_seed: str,
    choice: CoinFace,
    house_edge: Decimal,
) -> CoinflipResult:
    """Resolve a toss.

    The player wins when the derived point lands below the threshold; the
    reported face is the player's choice on a win and the other face
    otherwise. With a zero edge this is a fair 50/50.
    """
    point = ProvablyFair.derive_int(server_seed, client_seed, COINFLIP_TAG, POINT_RANGE)
    threshold = win_threshold(house_edge)
    win = point < threshold
    face = choice if win else choice.opposite()
    return CoinflipResult(face=face, win=win, point=point, threshold=threshold)


def payout_for(stake: Decimal, result: CoinflipResult) -> Decimal:
    return stake * WIN_MULTIPLIER if result.win else Decimal("0")


def verify_coinflip(
    server_seed: str,
    server_seed_hash: str,
    client_seed: str,
    choice: CoinFace,
    house_edge: Decimal,
    outcome: CoinFace,
) -> tuple[bool, str | None]:
    """
    Client-side fairness check for a settled game.

    Returns:
        (success, error_message)
    """
    if not ProvablyFair.verify_commitment(server_seed, server_seed_hash):
        return False, "Server seed hash mismatch"

    result = flip(server_seed, client_seed, choice, house_edge)
    if result.face != outcome:
        return False, "Outcome mismatch"

    return True, None
