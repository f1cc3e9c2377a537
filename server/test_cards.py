"""
Test suite for card scoring and the deck.

Run with: pytest test_cards.py -v
"""

import random

import pytest

from cards import Deck, fresh_shuffled_deck, penalty_value, row_penalty


# =============================================================================
# Penalty Values
# =============================================================================

class TestPenaltyValue:
    """Heads per card."""

    def test_55_worth_7(self):
        assert penalty_value(55) == 7

    def test_doublets_worth_5(self):
        for card in (11, 22, 33, 44, 66, 77, 88, 99):
            assert penalty_value(card) == 5, card

    def test_tens_worth_3(self):
        assert penalty_value(40) == 3
        assert penalty_value(100) == 3

    def test_fives_worth_2(self):
        assert penalty_value(25) == 2
        assert penalty_value(5) == 2

    def test_plain_worth_1(self):
        assert penalty_value(7) == 1
        assert penalty_value(104) == 1

    def test_every_card_in_allowed_set(self):
        for card in range(1, 105):
            assert penalty_value(card) in {1, 2, 3, 5, 7}

    def test_deck_total_heads(self):
        """Standard deck carries 171 heads."""
        assert row_penalty(range(1, 105)) == 171


class TestRowPenalty:

    def test_sum_of_row(self):
        assert row_penalty([2, 4, 6, 8, 10]) == 1 + 1 + 1 + 1 + 3

    def test_empty(self):
        assert row_penalty([]) == 0


# =============================================================================
# Deck
# =============================================================================

class TestFreshShuffledDeck:

    def test_full_range_no_duplicates(self):
        for _ in range(20):
            deck = fresh_shuffled_deck()
            assert len(deck) == 104
            assert sorted(deck) == list(range(1, 105))

    def test_seeded_rng_is_reproducible(self):
        assert fresh_shuffled_deck(random.Random(7)) == fresh_shuffled_deck(random.Random(7))


class TestDeck:

    def test_same_seed_same_order(self):
        assert Deck(seed=42).cards == Deck(seed=42).cards

    def test_seed_generated_when_missing(self):
        deck = Deck()
        assert isinstance(deck.seed, int)
        assert Deck(seed=deck.seed).cards == deck.cards

    def test_deal_takes_from_top(self):
        deck = Deck(seed=1)
        top = deck.cards[:10]
        assert deck.deal(10) == top
        assert deck.cards_remaining() == 94

    def test_deal_too_many_raises(self):
        deck = Deck(seed=1)
        deck.deal(100)
        with pytest.raises(ValueError):
            deck.deal(5)
        assert deck.cards_remaining() == 4
