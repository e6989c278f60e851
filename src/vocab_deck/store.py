"""
Local persistence: a string key-value backend and the content collections on top.

The store assumes one writer at a time. ``save_*`` overwrites a whole
collection, so two processes writing the same data directory lose updates
(last writer wins).
"""

import json
import os
import re
import uuid
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from .config import DEFAULT_NATIVE_LANGUAGE, DEFAULT_TARGET_LANGUAGE, SUPPORTED_CONTENT_LANGUAGES
from .errors import StoreError
from .logging_utils import logs_handler
from .model import CardDeck, Record, Story, WordCard, stable_id, stored_form

WORDS_KEY = "flashcardWords"
DECKS_KEY = "flashcardDecks"
STORIES_KEY = "flashcardStories"
NATIVE_LANG_KEY = "flashcardNativeLanguage"
TARGET_LANG_KEY = "flashcardTargetLanguage"

logger = logs_handler.get_logger("store")

R = TypeVar("R", bound=BaseModel)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store, used by tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


def sanitize_key(key: str) -> str:
    return re.sub(r'[/\\:*?"<>|]', "_", key)


class FileStore:
    """One ``<key>.json`` file per key under ``root``."""

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def _path(self, key: str) -> Path:
        return self.root / f"{sanitize_key(key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        # temp file + rename so a crash never leaves a half-written collection
        temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(value, encoding="utf-8")
            os.replace(temp_path, path)
        except OSError as e:
            logger.error("Failed to write key=%s to %s: %s", key, path, e)
            if temp_path.exists():
                temp_path.unlink()
            raise StoreError(f"Cannot write {key} to {self.root}") from e

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def dump_records(records: Iterable[Record]) -> str:
    return json.dumps([record.to_record() for record in records], ensure_ascii=False)


def migrate_records(raw_records: Iterable[Any], model: type[R], label: str) -> list[R]:
    migrated: list[R] = []
    for raw in raw_records:
        try:
            migrated.append(model.model_validate(stored_form(raw, model)))
        except ValidationError as e:
            logger.error("Skipping unreadable %s record: %s", label, e)
    return migrated


def has_embedded_cards(raw_deck: Any) -> bool:
    cards = raw_deck.get("cards") if isinstance(raw_deck, dict) else None
    return isinstance(cards, list) and any(isinstance(card, dict) for card in cards)


def extract_embedded_cards(
    raw_decks: list[Any], raw_words: list[Any]
) -> tuple[list[Any], list[Any]]:
    """Move cards embedded in legacy decks into the word list.

    Words are deduplicated by id, the first occurrence winning, so entries
    already present in ``raw_words`` are never replaced by a deck copy.
    Decks come back with id-only membership.
    """
    words_by_id: dict[str, Any] = {}
    loose_words: list[Any] = []
    for word in raw_words:
        word_id = word.get("id") if isinstance(word, dict) else None
        if not word_id:
            loose_words.append(word)
        elif word_id not in words_by_id:
            words_by_id[word_id] = word

    decks: list[Any] = []
    for deck in raw_decks:
        if not has_embedded_cards(deck):
            decks.append(deck)
            continue
        card_ids: list[str] = []
        for card in deck["cards"]:
            if isinstance(card, dict):
                card_id = card.get("id") or stable_id(card)
                words_by_id.setdefault(card_id, {**card, "id": card_id})
            else:
                card_id = card
            card_ids.append(card_id)
        decks.append({**deck, "cards": card_ids})
    return decks, list(words_by_id.values()) + loose_words


class ContentStore:
    """Words, decks and stories persisted in a key-value backend."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def _read_raw(self, key: str) -> list[Any]:
        try:
            text = self.kv.get(key)
            if not text:
                return []
            data = json.loads(text)
        except (OSError, ValueError) as e:
            logger.error("Error parsing %s from storage: %s", key, e)
            return []
        if not isinstance(data, list):
            logger.error("Error parsing %s from storage: expected a list, got %s", key, type(data).__name__)
            return []
        return data

    def _write(self, key: str, records: Iterable[Record]) -> None:
        self.kv.set(key, dump_records(records))

    def get_words(self) -> list[WordCard]:
        return migrate_records(self._read_raw(WORDS_KEY), WordCard, "word")

    def save_words(self, words: Iterable[WordCard]) -> None:
        self._write(WORDS_KEY, words)

    def get_decks(self) -> list[CardDeck]:
        return migrate_records(self._read_raw(DECKS_KEY), CardDeck, "deck")

    def save_decks(self, decks: Iterable[CardDeck]) -> None:
        self._write(DECKS_KEY, decks)

    def get_stories(self) -> list[Story]:
        return migrate_records(self._read_raw(STORIES_KEY), Story, "story")

    def save_stories(self, stories: Iterable[Story]) -> None:
        self._write(STORIES_KEY, stories)

    def get_legacy_deck_cards(self) -> list[WordCard]:
        """Cards still embedded in decks that predate id references."""
        embedded: list[Any] = []
        for raw_deck in self._read_raw(DECKS_KEY):
            if has_embedded_cards(raw_deck):
                embedded.extend(card for card in raw_deck["cards"] if isinstance(card, dict))
        return migrate_records(embedded, WordCard, "embedded card")

    def get_raw_collections(self) -> tuple[list[Any], list[Any]]:
        return self._read_raw(DECKS_KEY), self._read_raw(WORDS_KEY)

    def write_raw(self, key: str, raw_records: list[Any]) -> None:
        self.kv.set(key, json.dumps(raw_records, ensure_ascii=False))

    def snapshot(self) -> dict[str, str | None]:
        """Raw text of every collection, for ``restore``."""
        return {key: self.kv.get(key) for key in (WORDS_KEY, DECKS_KEY, STORIES_KEY)}

    def restore(self, snapshot: dict[str, str | None]) -> None:
        for key, text in snapshot.items():
            try:
                if text is None:
                    self.kv.delete(key)
                else:
                    self.kv.set(key, text)
            except (OSError, StoreError) as e:
                logger.error("Could not restore %s: %s", key, e)

    # language preferences

    def _get_language(self, key: str, default: str) -> str:
        try:
            value = self.kv.get(key)
        except OSError as e:
            logger.error("Error reading %s: %s", key, e)
            return default
        if not value:
            return default
        value = value.strip().strip('"')
        return value if value in SUPPORTED_CONTENT_LANGUAGES else default

    def _set_language(self, key: str, code: str) -> None:
        if code not in SUPPORTED_CONTENT_LANGUAGES:
            raise ValueError(f"Unsupported content language: {code!r}")
        self.kv.set(key, code)

    def get_native_language(self) -> str:
        return self._get_language(NATIVE_LANG_KEY, DEFAULT_NATIVE_LANGUAGE)

    def set_native_language(self, code: str) -> None:
        self._set_language(NATIVE_LANG_KEY, code)

    def get_target_language(self) -> str:
        return self._get_language(TARGET_LANG_KEY, DEFAULT_TARGET_LANGUAGE)

    def set_target_language(self, code: str) -> None:
        self._set_language(TARGET_LANG_KEY, code)


def open_store(data_dir: str | Path) -> ContentStore:
    return ContentStore(FileStore(data_dir))


def first_by_key(cards: Iterable[WordCard], key: Callable[[WordCard], str]) -> dict[str, WordCard]:
    lookup: dict[str, WordCard] = {}
    for card in cards:
        lookup.setdefault(key(card), card)
    return lookup
