"""
Module for object definitions

Records are persisted with the camelCase keys of the original web app backups
(``partOfSpeech``, ``deckId``...). Validating a raw record *is* the migration:
missing fields get defaults, malformed values fall back to their defaults and
unknown keys are carried along untouched. Any JSON object migrates.
"""

import json
from datetime import datetime, timezone
from typing import Any, ClassVar, get_args, get_origin
from uuid import UUID, uuid4, uuid5

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_NATIVE_LANGUAGE, DEFAULT_TARGET_LANGUAGE

# namespace for ids derived from the content of stored records that lack one
LEGACY_ID_NAMESPACE = UUID("6f1c2b8e-4d0a-5b7e-9a53-2c1d8e0f4a61")


def new_id() -> str:
    return str(uuid4())


def stable_id(raw: dict[str, Any]) -> str:
    """Id for a stored record without one; the same record always gets the same id."""
    canonical = json.dumps(raw, sort_keys=True, ensure_ascii=False, default=str)
    return str(uuid5(LEGACY_ID_NAMESPACE, canonical))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _list_or_empty(value: Any) -> Any:
    return value if isinstance(value, list) else []


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _coerce_value(annotation: Any, value: Any) -> tuple[bool, Any]:
    """(keep, value) for one stored value; ``keep=False`` means use the field default."""
    if annotation is str:
        return _is_scalar(value), str(value) if _is_scalar(value) else value
    if annotation == (str | None):
        if value is None:
            return True, None
        return True, str(value) if _is_scalar(value) else None
    if _is_model(annotation):
        return isinstance(value, (dict, BaseModel)), value
    if get_origin(annotation) is list:
        if not isinstance(value, list):
            return False, value
        (item,) = get_args(annotation) or (Any,)
        if item is str:
            return True, [str(entry) for entry in value if _is_scalar(entry)]
        if _is_model(item):
            return True, [entry for entry in value if isinstance(entry, (dict, BaseModel))]
    return True, value


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    # optional fields dropped from the stored record when unset
    OMIT_IF_NONE: ClassVar[tuple[str, ...]] = ()
    # fields with their own migration validator
    RAW_FIELDS: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def _migrate_values(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        migrated = dict(data)
        for name, field in cls.model_fields.items():
            key = field.alias if field.alias in migrated else name
            if name in cls.RAW_FIELDS or key not in migrated:
                continue
            keep, value = _coerce_value(field.annotation, migrated[key])
            if keep:
                migrated[key] = value
            else:
                del migrated[key]
        return migrated

    def to_record(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        for key in self.OMIT_IF_NONE:
            if data.get(key) is None:
                data.pop(key, None)
        return data


class LanguagePair(Record):
    target_language: str = DEFAULT_TARGET_LANGUAGE
    native_language: str = DEFAULT_NATIVE_LANGUAGE

    @field_validator("target_language", mode="before")
    @classmethod
    def _target_default(cls, value: Any) -> Any:
        return value or DEFAULT_TARGET_LANGUAGE

    @field_validator("native_language", mode="before")
    @classmethod
    def _native_default(cls, value: Any) -> Any:
        return value or DEFAULT_NATIVE_LANGUAGE


class Phonetics(Record):
    uk: str = ""
    us: str = ""


class PartOfSpeech(Record):
    abbreviation: str = ""
    native_name: str = ""


class Definition(Record):
    definition: str = ""
    native_definition: str = ""
    example: str = ""
    example_translation: str = ""


class Collocation(Record):
    phrase: str = ""
    translation: str = ""


class WordFamilyEntry(Record):
    word: str = ""
    part_of_speech: str = ""
    native_translation: str = ""


class Mnemonic(Record):
    type: str = ""
    target_language: str = ""
    native_language: str = ""


class FlashcardContent(BaseModel):
    """What the model has to produce for one word."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    word: str
    target_language: str
    native_language: str
    phonetics: Phonetics
    part_of_speech: PartOfSpeech
    definitions: list[Definition] = Field(min_length=1, max_length=3)
    collocations: list[Collocation]
    synonyms: list[str]
    antonyms: list[str]
    word_family: list[WordFamilyEntry]
    mnemonic: list[Mnemonic] = Field(min_length=2, max_length=3)


class WordCard(LanguagePair):
    OMIT_IF_NONE: ClassVar[tuple[str, ...]] = ("audioPronunciation", "image")

    id: str = Field(default_factory=new_id)
    word: str = ""
    phonetics: Phonetics = Field(default_factory=Phonetics)
    part_of_speech: PartOfSpeech = Field(default_factory=PartOfSpeech)
    definitions: list[Definition] = Field(default_factory=list)
    collocations: list[Collocation] = Field(default_factory=list)
    synonyms: list[str] = Field(default_factory=list)
    antonyms: list[str] = Field(default_factory=list)
    word_family: list[WordFamilyEntry] = Field(default_factory=list)
    mnemonic: list[Mnemonic] = Field(default_factory=list)
    # base64 raw mono PCM, 24 kHz
    audio_pronunciation: str | None = None
    image: str | None = None

    @property
    def key(self) -> str:
        """Lookup key used for deduplication across collections."""
        return self.word.strip().lower()

    @classmethod
    def from_content(
        cls,
        content: FlashcardContent,
        card_id: str | None = None,
        audio_pronunciation: str | None = None,
    ) -> "WordCard":
        return cls(
            id=card_id or new_id(),
            audio_pronunciation=audio_pronunciation,
            **content.model_dump(),
        )

    def content_fields(self) -> dict[str, Any]:
        """Every field except identity, for reuse under a new id."""
        data = self.to_record()
        data.pop("id", None)
        return data


class CardDeck(LanguagePair):
    RAW_FIELDS: ClassVar[tuple[str, ...]] = ("cards",)

    id: str = Field(default_factory=new_id)
    title: str = ""
    # word ids, display order
    cards: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)

    @field_validator("cards", mode="before")
    @classmethod
    def _card_ids(cls, value: Any) -> Any:
        # legacy decks embedded whole cards; keep only their ids
        ids: list[str] = []
        seen: set[str] = set()
        for entry in _list_or_empty(value):
            if isinstance(entry, dict):
                entry = entry.get("id") or stable_id(entry)
            if isinstance(entry, str) and entry and entry not in seen:
                seen.add(entry)
                ids.append(entry)
        return ids

    def with_cards(self, card_ids: list[str]) -> "CardDeck":
        """Copy with ``card_ids`` appended; ids already present keep their place."""
        membership = dict.fromkeys(self.cards)
        membership.update(dict.fromkeys(card_ids))
        return self.model_copy(update={"cards": list(membership)})


class Story(LanguagePair):
    id: str = Field(default_factory=new_id)
    deck_id: str = ""
    title: str = ""
    content: str = ""
    # snapshot at generation time, never follows the deck
    words: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)


def stored_form(raw: Any, model: type[BaseModel]) -> Any:
    """Fill what migration cannot default freshly: ``id`` and ``createdAt``.

    A stored record without an id gets one derived from its content, and a
    missing creation time stays empty, so reading the same data twice yields
    the same records.
    """
    if not isinstance(raw, dict):
        return raw
    filled = dict(raw)
    record_id = filled.get("id")
    if not (_is_scalar(record_id) and str(record_id)):
        filled["id"] = stable_id(raw)
    if "created_at" in model.model_fields and not _is_scalar(filled.get("createdAt", filled.get("created_at"))):
        filled.pop("created_at", None)
        filled["createdAt"] = ""
    return filled
