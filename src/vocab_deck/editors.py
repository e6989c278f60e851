"""
Edit sessions for a deck and for a set of words.

Each session auto-saves its in-memory state to a recovery slot after every
change and offers it back when the same deck (or the same set of words) is
opened again. Saving or cancelling clears the slot first.
"""

from collections.abc import Callable, Iterable

from .batch import BatchGenerator, ProgressCallback
from .drafts import DEFAULT_DEBOUNCE_SECONDS, DebouncedDraft, RecoverySlot
from .library import Library
from .logging_utils import logs_handler
from .model import CardDeck, WordCard

logger = logs_handler.get_logger("editors")

DECK_DRAFT_PREFIX = "draft_deck_"
WORDS_DRAFT_KEY = "draft_edit_words"


def deck_draft_slot(library: Library, deck_id: str) -> RecoverySlot[CardDeck]:
    return RecoverySlot(
        library.store.kv,
        f"{DECK_DRAFT_PREFIX}{deck_id}",
        dump=lambda deck: deck.to_record(),
        load=CardDeck.model_validate,
    )


def words_draft_slot(library: Library) -> RecoverySlot[list[WordCard]]:
    return RecoverySlot(
        library.store.kv,
        WORDS_DRAFT_KEY,
        dump=lambda words: [word.to_record() for word in words],
        load=lambda raw: [WordCard.model_validate(word) for word in raw],
    )


class DeckEditor:
    def __init__(
        self,
        library: Library,
        batch: BatchGenerator,
        deck: CardDeck,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.library = library
        self.batch = batch
        self.deck = deck.model_copy(deep=True)
        self.draft = DebouncedDraft(deck_draft_slot(library, deck.id), deck.id, debounce)

    def offer_restore(self, confirm: Callable[[], bool]) -> bool:
        restored = self.draft.offer_restore(confirm)
        if restored is None:
            return False
        self.deck = restored
        return True

    def _changed(self) -> None:
        self.draft.schedule(self.deck.model_copy(deep=True))

    def cards(self) -> list[WordCard]:
        return self.library.resolve_cards(self.deck)

    def rename(self, title: str) -> None:
        self.deck.title = title
        self._changed()

    def remove_word(self, word_id: str) -> None:
        self.deck.cards = [card_id for card_id in self.deck.cards if card_id != word_id]
        self._changed()

    def update_card(self, card: WordCard) -> None:
        # card edits go straight to the word store, like regenerations
        self.library.update_word(card)

    async def add_words(self, words: Iterable[str], on_progress: ProgressCallback | None = None) -> list[WordCard]:
        words = list(words)
        if not any(word.strip() for word in words):
            raise ValueError("Please enter at least one word to add.")
        cards = await self.batch.generate(
            words, self.deck.target_language, self.deck.native_language, on_progress
        )
        self.library.add_cards(cards)
        self.deck = self.deck.with_cards([card.id for card in cards])
        self._changed()
        logger.info("Added %d words to deck %s", len(cards), self.deck.id)
        return cards

    def save(self) -> CardDeck:
        self.draft.close()
        self.library.save_deck(self.deck)
        return self.deck

    def cancel(self) -> None:
        self.draft.close()


class WordsEditor:
    def __init__(
        self,
        library: Library,
        words: Iterable[WordCard],
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.library = library
        self.words = [word.model_copy(deep=True) for word in words]
        identity = sorted(word.id for word in self.words)
        self.draft = DebouncedDraft(words_draft_slot(library), identity, debounce)

    def offer_restore(self, confirm: Callable[[], bool]) -> bool:
        restored = self.draft.offer_restore(confirm)
        if restored is None:
            return False
        self.words = restored
        return True

    def update_card(self, card: WordCard) -> None:
        for index, word in enumerate(self.words):
            if word.id == card.id:
                self.words[index] = card
                self.draft.schedule([word.model_copy(deep=True) for word in self.words])
                return
        raise KeyError(card.id)

    def save(self) -> list[WordCard]:
        self.draft.close()
        self.library.save_words(self.words)
        return self.words

    def cancel(self) -> None:
        self.draft.close()
