"""
Turns a list of requested words into full WordCards, one word at a time.

Known words are copied from local storage under a fresh id; unknown ones are
generated remotely. After every completed word the accumulated cards are
checkpointed, so a failed or interrupted run with the same word set resumes
where it stopped instead of paying for the finished words again.
"""

from collections.abc import Callable, Iterable
from typing import Protocol

from langfuse import observe

from .drafts import RecoverySlot
from .logging_utils import logs_handler
from .model import FlashcardContent, WordCard, new_id
from .store import ContentStore, first_by_key

logger = logs_handler.get_logger("batch")

CHECKPOINT_KEY = "word_generation_draft"

ProgressCallback = Callable[[str], None]


class CardGenerator(Protocol):
    async def generate_flashcard_data(
        self, word: str, target_lang: str, native_lang: str
    ) -> FlashcardContent: ...

    async def generate_speech(self, word: str, target_lang: str) -> str | None: ...


def normalize_words(words: Iterable[str]) -> list[str]:
    """Lowercase, strip and dedupe, keeping first occurrences in order."""
    seen: dict[str, None] = {}
    for word in words:
        word = word.strip().lower()
        if word:
            seen.setdefault(word, None)
    return list(seen)


def checkpoint_slot(store: ContentStore, key: str = CHECKPOINT_KEY) -> RecoverySlot[list[WordCard]]:
    return RecoverySlot(
        store.kv,
        key,
        dump=lambda cards: [card.to_record() for card in cards],
        load=lambda raw: [WordCard.model_validate(card) for card in raw],
    )


def _ignore_progress(message: str) -> None:
    pass


class BatchGenerator:
    def __init__(self, store: ContentStore, client: CardGenerator, checkpoint_key: str = CHECKPOINT_KEY):
        self.store = store
        self.client = client
        self.checkpoint = checkpoint_slot(store, checkpoint_key)

    def _known_words(self) -> dict[str, WordCard]:
        # word store first: on a tie its version beats a deck-embedded copy
        cards = self.store.get_words() + self.store.get_legacy_deck_cards()
        return first_by_key(cards, lambda card: card.key)

    @observe(name="batch_generate")
    async def generate(
        self,
        words: Iterable[str],
        target_lang: str,
        native_lang: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[WordCard]:
        report = on_progress or _ignore_progress
        requested = normalize_words(words)
        if not requested:
            return []
        identity = sorted(requested)
        total = len(requested)

        generated = self.checkpoint.find(identity)
        if generated is None:
            generated = []
            self.checkpoint.discard()
        else:
            logger.info("Resuming generation: %d/%d words already done", len(generated), total)
            report("Found an unfinished batch, resuming progress...")
        done = {card.key for card in generated}

        report("Loading local data...")
        known = self._known_words()

        for index, word in enumerate(requested, start=1):
            if word in done:
                report(f'Skipped already generated word "{word}" ({index}/{total})')
                continue

            existing = known.get(word)
            if existing is not None:
                report(f'Found "{word}" locally ({index}/{total})')
                logger.debug("Reusing stored data for '%s' from card %s", word, existing.id)
                card = WordCard.model_validate({**existing.content_fields(), "id": new_id()})
            else:
                report(f'Generating data for "{word}" ({index}/{total})...')
                content = await self.client.generate_flashcard_data(word, target_lang, native_lang)
                report(f'Generating audio for "{word}" ({index}/{total})...')
                audio = await self.client.generate_speech(word, target_lang)
                if audio is None:
                    logger.info("No audio for '%s'; keeping the card without it", word)
                card = WordCard.from_content(content, audio_pronunciation=audio)

            generated.append(card)
            done.add(word)
            # the model may return a different surface form; remember both
            known.setdefault(word, card)
            known.setdefault(card.key, card)
            self.checkpoint.save(identity, generated)

        self.checkpoint.discard()
        logger.info("Batch complete: %d cards", len(generated))
        return generated
