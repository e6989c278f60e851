import os
import sys

import pytest
from dotenv import load_dotenv


def _add_src_to_path():
    # Ensure `src` is importable when running tests without installing the package
    here = os.path.dirname(__file__)
    src_path = os.path.abspath(os.path.join(here, "..", "src"))
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


load_dotenv()
_add_src_to_path()

from vocab_deck.errors import GenerationError  # noqa: E402
from vocab_deck.library import Library  # noqa: E402
from vocab_deck.model import FlashcardContent  # noqa: E402
from vocab_deck.store import ContentStore, MemoryStore  # noqa: E402


def content_for(word: str, target_lang: str = "en", native_lang: str = "zh", meaning: str = "") -> FlashcardContent:
    return FlashcardContent.model_validate(
        {
            "word": word,
            "targetLanguage": target_lang,
            "nativeLanguage": native_lang,
            "phonetics": {"uk": f"/{word}/", "us": f"/{word}/"},
            "partOfSpeech": {"abbreviation": "adj.", "nativeName": "形容词"},
            "definitions": [
                {
                    "definition": meaning or f"meaning of {word}",
                    "nativeDefinition": "释义",
                    "example": f"A {word} example.",
                    "exampleTranslation": "例句",
                }
            ],
            "collocations": [{"phrase": f"very {word}", "translation": "非常"}],
            "synonyms": ["alike"],
            "antonyms": ["unlike"],
            "wordFamily": [{"word": f"{word}ly", "partOfSpeech": "adv.", "nativeTranslation": "地"}],
            "mnemonic": [
                {"type": "谐音联想", "targetLanguage": "sounds like", "nativeLanguage": "听起来像"},
                {"type": "故事联想", "targetLanguage": "a story", "nativeLanguage": "一个故事"},
            ],
        }
    )


class FakeGenerationClient:
    """Stands in for GenerationClient; records every remote call."""

    def __init__(self, fail_on=(), speech: str | None = "UENNREFUQQ=="):
        self.fail_on = set(fail_on)
        self.speech = speech
        self.data_calls: list[str] = []
        self.speech_calls: list[str] = []
        self.story_calls: list[dict] = []
        self.word_list: list[str] = []

    async def generate_flashcard_data(self, word, target_lang, native_lang):
        self.data_calls.append(word)
        if word in self.fail_on:
            raise GenerationError(f'Failed to generate flashcard data for "{word}".')
        return content_for(word, target_lang, native_lang)

    async def generate_speech(self, word, target_lang):
        self.speech_calls.append(word)
        return self.speech

    async def generate_story(self, title, words, user_prompt="", image=None, target_lang="en", native_lang="zh"):
        self.story_calls.append({"title": title, "words": list(words), "prompt": user_prompt})
        return " ".join(f"**{word}**" for word in words)

    async def generate_word_list(self, prompt, image=None, target_lang="en", native_lang="zh"):
        return list(self.word_list)


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def store(kv):
    return ContentStore(kv)


@pytest.fixture
def library(store):
    return Library(store)


@pytest.fixture
def fake_client():
    return FakeGenerationClient()


@pytest.fixture
def make_client():
    return FakeGenerationClient
