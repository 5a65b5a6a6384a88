"""Tests for the slot machine tables and grid evaluation."""

from decimal import Decimal

import pytest

from spindbet.engine import slots
from spindbet.engine.provably_fair import ProvablyFair

CHERRY, LEMON, BELL, BAR, MONEY = range(5)


def grid_of(rows: list[list[int]]) -> list[int]:
    return [cell for row in rows for cell in row]


class TestTables:
    """Tests for the reference symbol table."""

    def test_weights(self):
        assert [symbol.weight for symbol in slots.SYMBOLS] == [40, 30, 15, 10, 5]
        assert slots.total_weight() == 100

    def test_paytable_tiers(self):
        """Top tier 50x down to fifth tier 2x."""
        multipliers = {symbol.name: symbol.multiplier for symbol in slots.SYMBOLS}
        assert multipliers == {
            "money_bag": Decimal("50"),
            "bar": Decimal("15"),
            "bell": Decimal("8"),
            "lemon": Decimal("4"),
            "cherry": Decimal("2"),
        }

    def test_paylines_are_rows_and_diagonals(self):
        assert slots.PAYLINES == ((0, 1, 2), (3, 4, 5), (6, 7, 8), (0, 4, 8), (2, 4, 6))


class TestPickSymbol:
    """Tests for weighted symbol selection."""

    @pytest.mark.parametrize(
        "point,expected",
        [(0, CHERRY), (39, CHERRY), (40, LEMON), (69, LEMON), (70, BELL), (84, BELL), (85, BAR), (94, BAR), (95, MONEY), (99, MONEY)],
    )
    def test_boundaries(self, point, expected):
        assert slots.pick_symbol(point) == expected

    def test_point_out_of_range(self):
        with pytest.raises(ValueError):
            slots.pick_symbol(100)


class TestReelStops:
    """Tests for reproducible reel stops."""

    def test_reproducible_from_seeds(self):
        commitment = ProvablyFair.commit()
        first = slots.reel_stops(commitment.server_seed, "client", 1)
        second = slots.reel_stops(commitment.server_seed, "client", 1)
        assert first == second
        assert len(first) == 3
        assert all(0 <= stop < len(slots.SYMBOLS) for stop in first)

    def test_matches_weighted_derivation(self):
        stops = slots.reel_stops("server", "client", 2)
        expected = [
            slots.pick_symbol(ProvablyFair.derive_int("server", "client", f"slots:reel:2:row:{row}", 100))
            for row in range(3)
        ]
        assert stops == expected

    def test_invalid_reel(self):
        with pytest.raises(ValueError):
            slots.reel_stops("server", "client", 3)


class TestEvaluateGrid:
    """Tests for payline evaluation."""

    def test_build_grid_puts_reels_in_columns(self):
        reels = [[0, 1, 2], [3, 4, 0], [1, 2, 3]]
        assert slots.build_grid(reels) == [0, 3, 1, 1, 4, 2, 2, 0, 3]

    def test_no_win(self):
        grid = grid_of([[CHERRY, LEMON, BELL], [BAR, MONEY, CHERRY], [LEMON, BELL, BAR]])
        evaluation = slots.evaluate_grid(grid, Decimal("1"))
        assert evaluation.payout == Decimal("0")
        assert evaluation.winning_lines == []

    def test_single_row(self):
        grid = grid_of([[BELL, BELL, BELL], [BAR, MONEY, CHERRY], [LEMON, CHERRY, BAR]])
        evaluation = slots.evaluate_grid(grid, Decimal("2"))
        assert evaluation.payout == Decimal("16")
        assert [win.line for win in evaluation.winning_lines] == [0]

    def test_middle_row_and_both_diagonals_add_up(self):
        """Three top-tier lines pay stake x 50 x 3."""
        grid = grid_of(
            [
                [MONEY, CHERRY, MONEY],
                [MONEY, MONEY, MONEY],
                [MONEY, LEMON, MONEY],
            ]
        )
        evaluation = slots.evaluate_grid(grid, Decimal("1"))
        assert sorted(win.line for win in evaluation.winning_lines) == [1, 3, 4]
        assert evaluation.payout == Decimal("150")
        assert evaluation.multiplier == Decimal("150")

    def test_mixed_tiers(self):
        grid = grid_of(
            [
                [CHERRY, CHERRY, CHERRY],
                [LEMON, BAR, LEMON],
                [BAR, BAR, BAR],
            ]
        )
        evaluation = slots.evaluate_grid(grid, Decimal("0.5"))
        # cherry row 2x + bar row 15x
        assert evaluation.payout == Decimal("8.5")

    def test_render_grid(self):
        grid = grid_of([[MONEY, MONEY, MONEY], [CHERRY, LEMON, BELL], [BAR, BAR, BAR]])
        assert slots.render_grid(grid).splitlines()[2] == "BAR BAR BAR"


class TestVerifySlotRound:
    """Tests for client-side slot verification."""

    def test_verify_accepts_honest_round(self):
        commitment = ProvablyFair.commit()
        reels = [slots.reel_stops(commitment.server_seed, "lucky", reel) for reel in range(3)]
        payout = slots.evaluate_grid(slots.build_grid(reels), Decimal("1")).payout

        ok, error = slots.verify_slot_round(
            commitment.server_seed, commitment.server_seed_hash, "lucky", reels, Decimal("1"), payout
        )
        assert ok, error

    def test_verify_rejects_swapped_reel(self):
        commitment = ProvablyFair.commit()
        reels = [slots.reel_stops(commitment.server_seed, "lucky", reel) for reel in range(3)]
        reels[0] = [(stop + 1) % 5 for stop in reels[0]]

        ok, error = slots.verify_slot_round(
            commitment.server_seed, commitment.server_seed_hash, "lucky", reels, Decimal("1"), Decimal("0")
        )
        assert not ok
        assert "Reel 0" in error

    def test_verify_rejects_wrong_hash(self):
        ok, error = slots.verify_slot_round("seed", "0" * 64, "lucky", [[0, 0, 0]] * 3, Decimal("1"), Decimal("0"))
        assert not ok
        assert "hash" in error
