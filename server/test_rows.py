"""
Test suite for row placement.

Run with: pytest test_rows.py -v
"""

from rows import (
    legal_targets,
    place_card,
    rank_row_choices,
    select_target,
    take_row,
)


class TestLegalTargets:

    def test_only_rows_ending_below_card(self):
        rows = [[10], [25], [50], [90]]
        targets = legal_targets(30, rows)
        assert [t.row_index for t in targets] == [0, 1]
        assert [t.gap for t in targets] == [20, 5]

    def test_none_when_card_lowest(self):
        assert legal_targets(5, [[10], [25], [50], [90]]) == []

    def test_equal_last_card_not_legal(self):
        assert legal_targets(25, [[25], [30], [40], [50]]) == []


class TestSelectTarget:

    def test_smallest_gap_wins(self):
        target = select_target(legal_targets(60, [[10], [25], [50], [90]]))
        assert target.row_index == 2
        assert target.gap == 10

    def test_tie_goes_to_first_row(self):
        target = select_target(legal_targets(30, [[10], [5], [10], [90]]))
        assert target.row_index == 0

    def test_no_targets(self):
        assert select_target([]) is None


class TestPlaceCard:

    def test_append_to_row_of_four(self):
        rows = [[1, 2, 3, 4], [50], [60], [70]]
        placement = place_card(rows, 0, 9)
        assert rows[0] == [1, 2, 3, 4, 9]
        assert not placement.took_row
        assert placement.penalty == 0

    def test_sixth_card_takes_row(self):
        rows = [[2, 4, 6, 8, 10], [50], [60], [70]]
        placement = place_card(rows, 0, 12)
        assert rows[0] == [12]
        assert placement.took_row
        assert placement.collected == [2, 4, 6, 8, 10]
        assert placement.penalty == 7

    def test_other_rows_untouched(self):
        rows = [[2, 4, 6, 8, 10], [50], [60], [70]]
        place_card(rows, 0, 12)
        assert rows[1:] == [[50], [60], [70]]


class TestTakeRow:

    def test_collects_row_and_restarts_with_card(self):
        rows = [[10], [25], [50], [90]]
        placement = take_row(rows, 1, 5)
        assert rows == [[10], [5], [50], [90]]
        assert placement.collected == [25]
        assert placement.penalty == 2


class TestRankRowChoices:

    def test_cheapest_first(self):
        rows = [[55], [3, 4], [11], [1]]
        choices = rank_row_choices(rows)
        assert [c.row_index for c in choices] == [3, 1, 2, 0]
        assert [c.penalty for c in choices] == [1, 2, 5, 7]

    def test_ties_keep_row_order(self):
        choices = rank_row_choices([[2], [3], [4], [6]])
        assert [c.row_index for c in choices] == [0, 1, 2, 3]
        assert choices[0].cards == (2,)
