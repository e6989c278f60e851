import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PACKAGE_PROMPTS_PATH = Path(__file__).parent / "prompts"

SUPPORTED_CONTENT_LANGUAGES: dict[str, str] = {
    "en": "English",
    "zh": "Chinese (Simplified)",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "ja": "Japanese",
    "ko": "Korean",
}

DEFAULT_TARGET_LANGUAGE = "en"
DEFAULT_NATIVE_LANGUAGE = "zh"


def language_name(code: str) -> str:
    """Display name for a content language code; unknown codes pass through."""
    return SUPPORTED_CONTENT_LANGUAGES.get(code, code)


@dataclass
class Settings:
    openai_api_key: str | None = None
    model_name: str = "gpt-4o-mini"
    tts_model: str = "gpt-4o-mini-tts"
    tts_voice: str = "coral"
    data_dir: Path = Path("~/.vocab_deck").expanduser()
    prompts_path: Path = PACKAGE_PROMPTS_PATH
    log_level: str = "info"
    draft_debounce_seconds: float = 1.0

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            model_name=os.getenv("VOCAB_DECK_MODEL", cls.model_name),
            tts_model=os.getenv("VOCAB_DECK_TTS_MODEL", cls.tts_model),
            tts_voice=os.getenv("VOCAB_DECK_TTS_VOICE", cls.tts_voice),
            data_dir=Path(os.getenv("VOCAB_DECK_DATA_DIR", "~/.vocab_deck")).expanduser(),
            prompts_path=Path(os.getenv("PROMPTS_PATH") or PACKAGE_PROMPTS_PATH),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            draft_debounce_seconds=float(os.getenv("VOCAB_DECK_DRAFT_DEBOUNCE", "1.0")),
        )
