import random
from collections.abc import Sequence

from .model import WordCard


class StudySession:
    """Flip-card review with two answers: known or still learning.

    Cards marked as learning come back, reshuffled, in the next round. The
    session ends after a round in which every card was known.
    """

    def __init__(self, cards: Sequence[WordCard], rng: random.Random | None = None):
        self._rng = rng or random.Random()
        self.queue = self._shuffled(cards)
        self.learning: list[WordCard] = []
        self.index = 0
        self.rounds = 1
        self.flipped = False

    def _shuffled(self, cards: Sequence[WordCard]) -> list[WordCard]:
        cards = list(cards)
        self._rng.shuffle(cards)
        return cards

    @property
    def is_complete(self) -> bool:
        return self.index >= len(self.queue)

    @property
    def current(self) -> WordCard | None:
        return None if self.is_complete else self.queue[self.index]

    @property
    def remaining(self) -> int:
        return len(self.queue) - self.index

    def flip(self) -> WordCard:
        card = self.current
        if card is None:
            raise RuntimeError("Study session is complete")
        self.flipped = True
        return card

    def mark_known(self) -> None:
        self._advance(learning=False)

    def mark_learning(self) -> None:
        self._advance(learning=True)

    def _advance(self, learning: bool) -> None:
        card = self.current
        if card is None:
            raise RuntimeError("Study session is complete")
        if learning:
            self.learning.append(card)
        self.flipped = False
        self.index += 1
        if self.index == len(self.queue) and self.learning:
            self.queue = self._shuffled(self.learning)
            self.learning = []
            self.index = 0
            self.rounds += 1
