"""Card ranks and the single-deck card supply."""

from enum import Enum, IntEnum
from random import Random
from typing import NamedTuple


class Suit(Enum):
    """Card suits (display only; scoring ignores them)."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"

    def __str__(self) -> str:
        symbols = {
            Suit.HEARTS: "♥",
            Suit.DIAMONDS: "♦",
            Suit.CLUBS: "♣",
            Suit.SPADES: "♠",
        }
        return symbols[self]


class Rank(IntEnum):
    """Card ranks. Ace is 1, face cards are 11-13."""

    ACE = 1
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13

    def __str__(self) -> str:
        return rank_label(self)

    @property
    def is_ace(self) -> bool:
        """Check if this rank is an Ace."""
        return self == Rank.ACE

    @property
    def is_face(self) -> bool:
        """Check if this rank is a Jack, Queen or King."""
        return self >= Rank.JACK


DECK_SIZE = 52
COPIES_PER_RANK = 4

_LABELS = {1: "A", 11: "J", 12: "Q", 13: "K"}
_NAMES = {1: "Ace", 11: "Jack", 12: "Queen", 13: "King"}
_SUIT_ORDER = (Suit.HEARTS, Suit.DIAMONDS, Suit.CLUBS, Suit.SPADES)


class InitialDeal(NamedTuple):
    """Result of dealing the opening two cards to each side."""

    deck: list[Rank]
    player_hand: list[Rank]
    dealer_hand: list[Rank]


class Draw(NamedTuple):
    """Result of drawing one card. ``card`` is None when the deck is empty."""

    card: Rank | None
    deck: list[Rank]


def create_deck() -> list[Rank]:
    """Return a fresh 52-card deck in rank-major order (A A A A 2 2 2 2 ...)."""
    return [rank for rank in Rank for _ in range(COPIES_PER_RANK)]


def shuffle(deck: list[Rank], rng: Random | None = None) -> list[Rank]:
    """
    Shuffle a deck in place with Fisher-Yates and return it.

    Args:
        deck: Cards to shuffle
        rng: Random number generator for reproducible shuffles

    Returns:
        The same list, permuted
    """
    rng = rng or Random()
    for i in range(len(deck) - 1, 0, -1):
        j = rng.randint(0, i)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def deal_initial_hands(rng: Random | None = None) -> InitialDeal:
    """
    Shuffle a fresh deck and deal two cards each.

    Cards come off the top in the order player, dealer, player, dealer.
    """
    deck = shuffle(create_deck(), rng)
    player_hand: list[Rank] = []
    dealer_hand: list[Rank] = []

    player_hand.append(deck.pop())
    dealer_hand.append(deck.pop())
    player_hand.append(deck.pop())
    dealer_hand.append(deck.pop())

    return InitialDeal(deck, player_hand, dealer_hand)


def draw(deck: list[Rank]) -> Draw:
    """
    Draw the top card.

    The input list is left untouched; the remainder comes back as a new list.
    An empty deck yields ``Draw(None, deck)``.
    """
    if not deck:
        return Draw(None, deck)
    remaining = deck[:-1]
    return Draw(Rank(deck[-1]), remaining)


def rank_label(rank: int) -> str:
    """Short label used on card faces: A, 2-10, J, Q, K."""
    return _LABELS.get(int(rank), str(int(rank)))


def rank_name(rank: int) -> str:
    """Spoken name of a rank: Ace, 2-10, Jack, Queen, King."""
    return _NAMES.get(int(rank), str(int(rank)))


def display_suit(rank: int, position: int) -> Suit:
    """
    Suit shown for a card.

    Ranks carry no suit, so the suit is derived from the rank and the card's
    position in its hand. The result is stable across renders and two equal
    ranks in one hand never show the same suit.
    """
    return _SUIT_ORDER[(int(rank) + position) % len(_SUIT_ORDER)]
