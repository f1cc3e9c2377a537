"""
Rule constants for Take 6.

Fixed table geometry lives here as plain constants. The tunable defaults
(rounds, score limit, hand size, player cap) are read from config.py so
they can be overridden through environment variables.

Penalty values ("heads") per card:
    - 55: 7
    - multiples of 11: 5
    - multiples of 10: 3
    - multiples of 5: 2
    - everything else: 1
"""

from config import config


# =============================================================================
# Table Geometry
# =============================================================================

DECK_SIZE: int = 104
NUM_ROWS: int = 4
ROW_CAPACITY: int = 5     # a 6th card takes the row
MIN_PLAYERS: int = 2


# =============================================================================
# Configurable Defaults
# =============================================================================

DEFAULT_MAX_ROUNDS = config.game_defaults.max_rounds
DEFAULT_SCORE_LIMIT = config.game_defaults.score_limit
DEFAULT_HAND_SIZE = config.game_defaults.hand_size
MAX_PLAYERS = config.MAX_PLAYERS_PER_GAME
GAME_CODE_LENGTH = config.GAME_CODE_LENGTH


# =============================================================================
# Penalty Values
# =============================================================================

SPECIAL_CARD = 55
SPECIAL_CARD_HEADS = 7
DOUBLET_HEADS = 5   # 11, 22, ... 99
TENS_HEADS = 3      # 10, 20, ... 100
FIVES_HEADS = 2     # 5, 15, ... 95
PLAIN_HEADS = 1
