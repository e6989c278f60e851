# agent.py
from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path

import httpx
from langfuse import observe
from openai import AsyncOpenAI, OpenAIError
from pydantic_ai import Agent, BinaryContent, RunContext
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from .config import PACKAGE_PROMPTS_PATH, language_name
from .errors import GenerationError
from .logging_utils import logs_handler
from .model import FlashcardContent

logger = logs_handler.get_logger("agent")

# generate_speech returns raw mono 16-bit PCM at this rate
SPEECH_SAMPLE_RATE = 24000


def load_prompt(filename: str, prompts_path: str | Path | None = None) -> str:
    prompt_path = Path(prompts_path or PACKAGE_PROMPTS_PATH) / filename
    if not prompt_path.is_file():
        raise FileNotFoundError(f"System prompt not found at {prompt_path.resolve()}")

    prompt_text = prompt_path.read_text(encoding="utf-8").strip()
    logger.info("Loaded system prompt from %s", prompt_path.resolve())
    return prompt_text


def load_image(path: str | Path) -> BinaryContent:
    path = Path(path)
    media_type, _ = mimetypes.guess_type(path.name)
    return BinaryContent(data=path.read_bytes(), media_type=media_type or "image/png")


def parse_word_list(text: str | None) -> list[str]:
    """Comma-separated model answer -> lowercase words, empties dropped."""
    if not text:
        return []
    text = text.strip().removesuffix(".")
    return [word.strip().lower() for word in text.split(",") if word.strip()]


@dataclass
class Deps:
    target_lang: str
    native_lang: str


class GenerationClient:
    """Remote content generation: word lists, flashcards, speech and stories."""

    def __init__(
        self,
        model_name,
        api_key,
        tts_model: str = "gpt-4o-mini-tts",
        tts_voice: str = "coral",
        prompts_path: str | Path | None = None,
    ):
        logger.info("Initializing GenerationClient with model=%s tts=%s", model_name, tts_model)
        model = OpenAIChatModel(model_name, provider=OpenAIProvider(api_key=api_key))
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self._speech = AsyncOpenAI(api_key=api_key)

        self.word_list_agent = self._language_agent(model, str, load_prompt("word_list.txt", prompts_path))
        self.image_words_agent = self._language_agent(model, str, load_prompt("image_words.txt", prompts_path))
        self.flashcard_agent = self._language_agent(
            model, FlashcardContent, load_prompt("flashcard.txt", prompts_path)
        )
        self.story_agent = self._language_agent(model, str, load_prompt("story.txt", prompts_path))

    @staticmethod
    def _language_agent(model, output_type, template: str) -> Agent:
        agent = Agent(model=model, deps_type=Deps, output_type=output_type, instrument=True)

        @agent.system_prompt
        def language_prompt(ctx: RunContext[Deps]) -> str:
            return template.format(
                target_language=language_name(ctx.deps.target_lang),
                native_language=language_name(ctx.deps.native_lang),
                target_code=ctx.deps.target_lang,
                native_code=ctx.deps.native_lang,
            )

        return agent

    async def _run(self, agent: Agent, user_prompt, deps: Deps, failure: str):
        logger.debug("Agent prompt: %s", user_prompt)
        try:
            result = await agent.run(user_prompt, deps=deps)
        except (AgentRunError, OpenAIError) as e:
            logger.error("%s: %s", failure, e)
            raise GenerationError(failure) from e
        logger.debug("Agent output: %s", result.output)
        return result.output

    @observe()
    async def generate_word_list(
        self,
        prompt: str,
        image: BinaryContent | None = None,
        target_lang: str = "en",
        native_lang: str = "zh",
    ) -> list[str]:
        logger.info("Generating word list | target=%s native=%s", target_lang, native_lang)
        user_prompt = [prompt, image] if image is not None else prompt
        text = await self._run(
            self.word_list_agent,
            user_prompt,
            Deps(target_lang, native_lang),
            "Failed to generate the word list. The model might be unavailable.",
        )
        return parse_word_list(text)

    @observe()
    async def recognize_words_in_image(
        self, image: BinaryContent, target_lang: str = "en", native_lang: str = "zh"
    ) -> list[str]:
        logger.info("Recognizing words in image | media_type=%s", image.media_type)
        text = await self._run(
            self.image_words_agent,
            ["Which words are in this image?", image],
            Deps(target_lang, native_lang),
            "Failed to recognize words from the uploaded image.",
        )
        return parse_word_list(text)

    @observe()
    async def generate_flashcard_data(
        self, word: str, target_lang: str, native_lang: str
    ) -> FlashcardContent:
        logger.info("Generating flashcard | word='%s' target=%s native=%s", word, target_lang, native_lang)
        content = await self._run(
            self.flashcard_agent,
            f"WORD: {word}",
            Deps(target_lang, native_lang),
            f'Failed to generate flashcard data for "{word}".',
        )
        return content.model_copy(update={"target_language": target_lang, "native_language": native_lang})

    @observe()
    async def generate_speech(self, word: str, target_lang: str) -> str | None:
        """Base64 PCM for ``word``, or None when synthesis fails."""
        logger.info("Generating speech | word='%s' target=%s", word, target_lang)
        try:
            response = await self._speech.audio.speech.create(
                model=self.tts_model,
                voice=self.tts_voice,
                input=word,
                response_format="pcm",
            )
        except (OpenAIError, httpx.HTTPError) as e:
            logger.error('Error generating speech for "%s": %s', word, e)
            return None
        audio = response.content
        if not audio:
            return None
        logger.debug("Speech for '%s': %d bytes of %d Hz PCM", word, len(audio), SPEECH_SAMPLE_RATE)
        return base64.b64encode(audio).decode("ascii")

    @observe()
    async def generate_story(
        self,
        title: str,
        words: list[str],
        user_prompt: str = "",
        image: BinaryContent | None = None,
        target_lang: str = "en",
        native_lang: str = "zh",
    ) -> str:
        logger.info("Generating story | title='%s' words=%d", title, len(words))
        prompt = f"TITLE: {title}\nWORDS: {', '.join(words)}"
        if user_prompt.strip():
            prompt += f"\nUSER REQUEST: {user_prompt.strip()}"
        request = [prompt, image] if image is not None else prompt
        return await self._run(
            self.story_agent,
            request,
            Deps(target_lang, native_lang),
            "Failed to generate a story. Please try again.",
        )
