"""
Record-level operations over the content store.

Every operation reads the collections it touches, changes them in memory and
writes each one back whole.
"""

import json
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from .errors import ImportValidationError, StoreError
from .logging_utils import logs_handler
from .model import CardDeck, Story, WordCard, stored_form
from .store import DECKS_KEY, WORDS_KEY, ContentStore, extract_embedded_cards, has_embedded_cards

logger = logs_handler.get_logger("library")


class Library:
    def __init__(self, store: ContentStore):
        self.store = store

    # decks

    def save_deck(self, deck: CardDeck) -> None:
        decks = self.store.get_decks()
        for index, existing in enumerate(decks):
            if existing.id == deck.id:
                decks[index] = deck
                break
        else:
            decks.insert(0, deck)
        self.store.save_decks(decks)
        logger.info("Saved deck %s ('%s', %d cards)", deck.id, deck.title, len(deck.cards))

    def get_deck(self, deck_id: str) -> CardDeck | None:
        return next((deck for deck in self.store.get_decks() if deck.id == deck_id), None)

    def delete_deck(self, deck_id: str) -> None:
        """Drop the deck and its stories; its words stay in the word store."""
        decks = [deck for deck in self.store.get_decks() if deck.id != deck_id]
        self.store.save_decks(decks)
        stories = self.store.get_stories()
        kept = [story for story in stories if story.deck_id != deck_id]
        self.store.save_stories(kept)
        logger.info("Deleted deck %s and %d stories", deck_id, len(stories) - len(kept))

    def resolve_cards(self, deck: CardDeck) -> list[WordCard]:
        """Deck membership as cards, in deck order; dangling ids are skipped."""
        words = {word.id: word for word in self.store.get_words()}
        return [words[card_id] for card_id in deck.cards if card_id in words]

    # words

    def get_word(self, word_id: str) -> WordCard | None:
        return next((word for word in self.store.get_words() if word.id == word_id), None)

    def save_words(self, cards: Iterable[WordCard]) -> None:
        """Upsert: the given cards first, then every other stored word."""
        cards = list(cards)
        ids = {card.id for card in cards}
        others = [word for word in self.store.get_words() if word.id not in ids]
        self.store.save_words(cards + others)

    def add_cards(self, cards: Iterable[WordCard]) -> None:
        """Upsert keeping stored order; new cards go to the end."""
        incoming = {card.id: card for card in cards}
        words = [incoming.pop(word.id, word) for word in self.store.get_words()]
        words.extend(incoming.values())
        self.store.save_words(words)

    def update_word(self, card: WordCard) -> bool:
        words = self.store.get_words()
        for index, existing in enumerate(words):
            if existing.id == card.id:
                words[index] = card
                self.store.save_words(words)
                return True
        logger.warning("Word %s is not stored; update ignored", card.id)
        return False

    def delete_word(self, word_id: str) -> None:
        """Remove the word everywhere; decks survive even when left empty."""
        self.store.save_words([word for word in self.store.get_words() if word.id != word_id])
        decks = self.store.get_decks()
        for deck in decks:
            deck.cards = [card_id for card_id in deck.cards if card_id != word_id]
        self.store.save_decks(decks)
        logger.info("Deleted word %s", word_id)

    # stories

    def save_story(self, story: Story) -> None:
        stories = [existing for existing in self.store.get_stories() if existing.id != story.id]
        self.store.save_stories([story] + stories)

    def delete_story(self, story_id: str) -> None:
        self.store.save_stories([story for story in self.store.get_stories() if story.id != story_id])

    # backup

    def export_data(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "decks": [deck.to_record() for deck in self.store.get_decks()],
            "words": [word.to_record() for word in self.store.get_words()],
            "stories": [story.to_record() for story in self.store.get_stories()],
        }

    def export_json(self) -> str:
        return json.dumps(self.export_data(), ensure_ascii=False, indent=2)

    def import_data(self, payload: dict[str, Any] | str | bytes) -> None:
        """Replace every deck, word and story with the payload's.

        Validates everything first: on any error nothing is written. A
        failed write puts the previous collections back.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise ImportValidationError("Invalid file format. Please select a valid JSON backup file.") from e
        if not isinstance(payload, dict):
            raise ImportValidationError("Invalid file format. Please select a valid JSON backup file.")

        raw_decks = payload.get("decks") if isinstance(payload.get("decks"), list) else []
        raw_words = payload.get("words") if isinstance(payload.get("words"), list) else []
        raw_stories = payload.get("stories") if isinstance(payload.get("stories"), list) else []
        if any(has_embedded_cards(deck) for deck in raw_decks):
            logger.info("Upgrading legacy decks with embedded cards")
            raw_decks, raw_words = extract_embedded_cards(raw_decks, raw_words)

        try:
            decks = [CardDeck.model_validate(stored_form(deck, CardDeck)) for deck in raw_decks]
            words = [WordCard.model_validate(stored_form(word, WordCard)) for word in raw_words]
            stories = [Story.model_validate(stored_form(story, Story)) for story in raw_stories]
        except ValidationError as e:
            raise ImportValidationError(f"Invalid backup content: {e.error_count()} invalid fields") from e

        previous = self.store.snapshot()
        try:
            # words first so no deck ever points at a missing card
            self.store.save_words(words)
            self.store.save_decks(decks)
            self.store.save_stories(stories)
        except StoreError:
            logger.error("Import failed while writing; restoring the previous data")
            self.store.restore(previous)
            raise
        logger.info("Imported %d decks, %d words, %d stories", len(decks), len(words), len(stories))

    def upgrade_legacy_decks(self) -> bool:
        """Move cards embedded in stored decks into the word store."""
        raw_decks, raw_words = self.store.get_raw_collections()
        if not any(has_embedded_cards(deck) for deck in raw_decks):
            return False
        decks, words = extract_embedded_cards(raw_decks, raw_words)
        # words first so no deck ever points at a missing card
        self.store.write_raw(WORDS_KEY, words)
        self.store.write_raw(DECKS_KEY, decks)
        logger.info("Upgraded legacy deck storage: %d decks, %d words", len(decks), len(words))
        return True
