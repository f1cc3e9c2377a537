"""
Card scoring and deck handling for Take 6.

Cards are plain integers 1..104. Each card carries a penalty value
("heads") that is charged to whoever collects it from a row.
"""

import random
from typing import Iterable, Optional

from constants import (
    DECK_SIZE,
    SPECIAL_CARD,
    SPECIAL_CARD_HEADS,
    DOUBLET_HEADS,
    TENS_HEADS,
    FIVES_HEADS,
    PLAIN_HEADS,
)


def penalty_value(card: int) -> int:
    """
    Get the penalty value (heads) of a single card.

    Args:
        card: Card value in [1, 104].

    Returns:
        One of 1, 2, 3, 5 or 7.
    """
    # 55 is also a multiple of 11 and 5, so it must be checked first
    if card == SPECIAL_CARD:
        return SPECIAL_CARD_HEADS
    if card % 11 == 0:
        return DOUBLET_HEADS
    if card % 10 == 0:
        return TENS_HEADS
    if card % 5 == 0:
        return FIVES_HEADS
    return PLAIN_HEADS


def row_penalty(cards: Iterable[int]) -> int:
    """Sum of penalty values over a row (or any collection of cards)."""
    return sum(penalty_value(card) for card in cards)


def fresh_shuffled_deck(rng: Optional[random.Random] = None) -> list[int]:
    """
    Build a new uniformly shuffled deck covering 1..104 exactly once.

    Args:
        rng: Optional random source (seeded for deterministic deals).

    Returns:
        List of 104 unique card values.
    """
    deck = list(range(1, DECK_SIZE + 1))
    (rng or random).shuffle(deck)
    return deck


class Deck:
    """
    A freshly shuffled 104-card deck that cards are dealt from.

    A deck is never reshuffled or resumed: every round builds a new one.
    The seed is kept so a deal can be reproduced.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        """
        Initialize and shuffle a new deck.

        Args:
            seed: Optional random seed for deterministic shuffle.
                  If None, a random seed is generated and stored.
        """
        self.seed: int = seed if seed is not None else random.randint(0, 2**31 - 1)
        self.cards: list[int] = fresh_shuffled_deck(random.Random(self.seed))

    def deal(self, count: int) -> list[int]:
        """
        Take cards off the top of the deck.

        Args:
            count: Number of cards to take.

        Returns:
            The dealt cards, in deal order.

        Raises:
            ValueError: If fewer than ``count`` cards remain.
        """
        if count > len(self.cards):
            raise ValueError(f"Cannot deal {count} cards, only {len(self.cards)} left")
        dealt = self.cards[:count]
        del self.cards[:count]
        return dealt

    def cards_remaining(self) -> int:
        """Return the number of cards left in the deck."""
        return len(self.cards)
