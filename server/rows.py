"""
Row placement rules for Take 6.

A played card joins the row whose last card is the highest one still
below it ("closest below"). When no row ends below the card, the player
has to pick a row by hand and collect it.

Rows are plain lists of ints, strictly increasing, never empty.
"""

from dataclasses import dataclass, field
from typing import Optional

from cards import row_penalty
from constants import ROW_CAPACITY


@dataclass(frozen=True)
class RowTarget:
    """
    A row that can legally receive a card.

    Attributes:
        row_index: 0-based row position.
        last_card: Current last card of the row.
        gap: card - last_card (always > 0).
    """

    row_index: int
    last_card: int
    gap: int


@dataclass
class Placement:
    """
    Result of putting a card on a row.

    Attributes:
        row_index: Row the card went to.
        card: The placed card.
        collected: Cards removed from the row and charged to the placer
            (empty for a plain append).
        penalty: Penalty value of the collected cards.
    """

    row_index: int
    card: int
    collected: list[int] = field(default_factory=list)
    penalty: int = 0

    @property
    def took_row(self) -> bool:
        return bool(self.collected)


@dataclass(frozen=True)
class RowChoice:
    """What picking a row by hand would cost."""

    row_index: int
    cards: tuple[int, ...]
    penalty: int


def legal_targets(card: int, rows: list[list[int]]) -> list[RowTarget]:
    """
    List the rows that accept ``card``, in row order.

    A row accepts a card only if the card is strictly greater than the
    row's last card.
    """
    targets = []
    for index, row in enumerate(rows):
        last = row[-1]
        gap = card - last
        if gap > 0:
            targets.append(RowTarget(row_index=index, last_card=last, gap=gap))
    return targets


def select_target(targets: list[RowTarget]) -> Optional[RowTarget]:
    """
    Pick the target with the smallest gap.

    Ties go to the first target in row order. Returns None when there is
    no legal target, which means the player must choose a row.
    """
    best = None
    for target in targets:
        if best is None or target.gap < best.gap:
            best = target
    return best


def place_card(rows: list[list[int]], row_index: int, card: int) -> Placement:
    """
    Put a card on its target row, in place.

    If the row already holds ROW_CAPACITY cards the placer collects them
    all and the row restarts with only the new card.
    """
    row = rows[row_index]
    if len(row) >= ROW_CAPACITY:
        collected = list(row)
        rows[row_index] = [card]
        return Placement(
            row_index=row_index,
            card=card,
            collected=collected,
            penalty=row_penalty(collected),
        )

    row.append(card)
    return Placement(row_index=row_index, card=card)


def take_row(rows: list[list[int]], row_index: int, card: int) -> Placement:
    """
    Collect a whole row by choice and restart it with ``card``, in place.

    Used when a card has no legal target.
    """
    collected = list(rows[row_index])
    rows[row_index] = [card]
    return Placement(
        row_index=row_index,
        card=card,
        collected=collected,
        penalty=row_penalty(collected),
    )


def rank_row_choices(rows: list[list[int]]) -> list[RowChoice]:
    """
    Rank rows by what collecting them would cost, cheapest first.

    Ties keep row order. Shown to a player who must pick a row.
    """
    choices = [
        RowChoice(row_index=i, cards=tuple(row), penalty=row_penalty(row))
        for i, row in enumerate(rows)
    ]
    return sorted(choices, key=lambda c: (c.penalty, c.row_index))
