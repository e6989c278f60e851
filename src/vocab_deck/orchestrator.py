# orchestrator.py
from __future__ import annotations

import re
from collections.abc import Iterable

from pydantic_ai import BinaryContent

from .agent import GenerationClient
from .batch import BatchGenerator, ProgressCallback
from .config import Settings
from .drafts import DEFAULT_DEBOUNCE_SECONDS
from .editors import DeckEditor, WordsEditor
from .library import Library
from .logging_utils import logs_handler
from .model import CardDeck, Story, WordCard
from .store import ContentStore, open_store

logger = logs_handler.get_logger()

MIN_STORY_WORDS = 3

_WORD_SEPARATORS = re.compile(r"[\n,]+")


def parse_word_input(text: str) -> list[str]:
    """Words typed by the user, separated by commas or new lines."""
    return [word.strip().lower() for word in _WORD_SEPARATORS.split(text) if word.strip()]


def merge_word_input(existing: str, new_words: Iterable[str]) -> str:
    present = {word.strip() for word in _WORD_SEPARATORS.split(existing) if word.strip()}
    added = [word for word in new_words if word not in present]
    if existing.strip() and added:
        return existing + ",\n" + ",\n".join(added)
    if not added:
        return existing
    return ",\n".join(added)


class VocabOrchestrator:
    def __init__(self, store: ContentStore, client: GenerationClient, debounce: float = DEFAULT_DEBOUNCE_SECONDS):
        self.store = store
        self.client = client
        self.library = Library(store)
        self.batch = BatchGenerator(store, client)
        self.debounce = debounce
        if self.library.upgrade_legacy_decks():
            logger.info("Stored decks migrated to id references")

    @classmethod
    def from_settings(cls, settings: Settings) -> VocabOrchestrator:
        client = GenerationClient(
            settings.model_name,
            settings.openai_api_key,
            tts_model=settings.tts_model,
            tts_voice=settings.tts_voice,
            prompts_path=settings.prompts_path,
        )
        return cls(open_store(settings.data_dir), client, settings.draft_debounce_seconds)

    def _languages(self, target_lang: str | None, native_lang: str | None) -> tuple[str, str]:
        return (
            target_lang or self.store.get_target_language(),
            native_lang or self.store.get_native_language(),
        )

    async def create_deck_async(
        self,
        title: str,
        words: Iterable[str],
        target_lang: str | None = None,
        native_lang: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CardDeck:
        words = list(words)
        if not any(word.strip() for word in words):
            raise ValueError("Please enter at least one word.")
        if not title.strip():
            raise ValueError("Please enter a deck title.")
        target_lang, native_lang = self._languages(target_lang, native_lang)
        logger.info("Creating deck '%s' with %d words", title, len(words))

        cards = await self.batch.generate(words, target_lang, native_lang, on_progress)
        # cards before the deck so membership always resolves
        self.library.add_cards(cards)
        deck = CardDeck(
            title=title.strip(),
            cards=[card.id for card in cards],
            target_language=target_lang,
            native_language=native_lang,
        )
        self.library.save_deck(deck)
        return deck

    async def create_words_async(
        self,
        words: Iterable[str],
        target_lang: str | None = None,
        native_lang: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[WordCard]:
        words = list(words)
        if not any(word.strip() for word in words):
            raise ValueError("Please enter at least one word.")
        target_lang, native_lang = self._languages(target_lang, native_lang)
        cards = await self.batch.generate(words, target_lang, native_lang, on_progress)
        self.library.add_cards(cards)
        logger.info("Created %d independent words", len(cards))
        return cards

    async def add_words_to_deck_async(
        self,
        deck: CardDeck,
        words: Iterable[str],
        on_progress: ProgressCallback | None = None,
    ) -> CardDeck:
        """Generate ``words`` into the word store; returns the deck with them appended.

        The returned deck is not saved.
        """
        cards = await self.batch.generate(words, deck.target_language, deck.native_language, on_progress)
        self.library.add_cards(cards)
        return deck.with_cards([card.id for card in cards])

    async def regenerate_word_async(self, card: WordCard, keep_audio: bool = True) -> WordCard:
        logger.info("Regenerating card %s ('%s')", card.id, card.word)
        content = await self.client.generate_flashcard_data(card.word, card.target_language, card.native_language)
        regenerated = WordCard.from_content(
            content,
            card_id=card.id,
            audio_pronunciation=card.audio_pronunciation if keep_audio else None,
        )
        regenerated.image = card.image
        self.library.update_word(regenerated)
        return regenerated

    async def generate_story_async(
        self,
        deck: CardDeck,
        user_prompt: str = "",
        image: BinaryContent | None = None,
    ) -> Story:
        words = [card.word for card in self.library.resolve_cards(deck)]
        if len(words) < MIN_STORY_WORDS:
            raise ValueError(f"Deck must contain at least {MIN_STORY_WORDS} words")
        content = await self.client.generate_story(
            deck.title,
            words,
            user_prompt,
            image,
            deck.target_language,
            deck.native_language,
        )
        story = Story(
            deck_id=deck.id,
            title=f"{deck.title} - AI Story",
            content=content,
            words=words,
            target_language=deck.target_language,
            native_language=deck.native_language,
        )
        self.library.save_story(story)
        logger.info("Story %s generated for deck %s", story.id, deck.id)
        return story

    async def generate_word_list_async(
        self,
        prompt: str,
        existing_text: str = "",
        image: BinaryContent | None = None,
    ) -> str:
        target_lang, native_lang = self._languages(None, None)
        words = await self.client.generate_word_list(prompt, image, target_lang, native_lang)
        return merge_word_input(existing_text, words)

    def edit_deck(self, deck: CardDeck) -> DeckEditor:
        return DeckEditor(self.library, self.batch, deck, self.debounce)

    def edit_words(self, words: Iterable[WordCard]) -> WordsEditor:
        return WordsEditor(self.library, words, self.debounce)
