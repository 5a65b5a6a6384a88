"""Provably fair game engines: commitment scheme, slot machine, coinflip."""

from spindbet.engine.provably_fair import ProvablyFair, SeedCommitment

__all__ = [
    "ProvablyFair",
    "SeedCommitment",
]
