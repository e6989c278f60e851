from .batch import BatchGenerator, normalize_words
from .errors import GenerationError, ImportValidationError, StoreError
from .library import Library
from .model import CardDeck, FlashcardContent, Story, WordCard
from .store import ContentStore, FileStore, MemoryStore

__all__ = [
    "BatchGenerator",
    "CardDeck",
    "ContentStore",
    "FileStore",
    "FlashcardContent",
    "GenerationError",
    "ImportValidationError",
    "Library",
    "MemoryStore",
    "Story",
    "StoreError",
    "WordCard",
    "normalize_words",
]
