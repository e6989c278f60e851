import base64
import logging

import httpx
import pytest
from openai import APIConnectionError
from pydantic_ai import BinaryContent
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.messages import ModelMessage, ModelResponse, SystemPromptPart, TextPart, ToolCallPart
from pydantic_ai.models.function import AgentInfo, FunctionModel

from conftest import content_for
from vocab_deck import agent as agent_module
from vocab_deck.agent import GenerationClient, parse_word_list
from vocab_deck.errors import GenerationError

pytestmark = pytest.mark.asyncio


class FakeSpeech:
    def __init__(self, captured, audio=b"PCMDATA", error=None):
        self.captured = captured
        self.audio = audio
        self.error = error

    async def create(self, **kwargs):
        self.captured.setdefault("speech", []).append(kwargs)
        if self.error is not None:
            raise self.error
        return httpx.Response(200, content=self.audio)


def _make_client(monkeypatch, respond, captured, **speech_kwargs):
    """Build a GenerationClient whose agents all answer through ``respond``."""

    def function(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        parts = messages[0].parts
        captured["system"] = " ".join(p.content for p in parts if isinstance(p, SystemPromptPart))
        captured["user"] = str(parts[-1].content)
        return respond(messages, info)

    monkeypatch.setattr(agent_module, "OpenAIChatModel", lambda *args, **kwargs: FunctionModel(function))

    speech = FakeSpeech(captured, **speech_kwargs)

    class FakeOpenAI:
        def __init__(self, *args, **kwargs):
            self.audio = type("Audio", (), {"speech": speech})()

    monkeypatch.setattr(agent_module, "AsyncOpenAI", FakeOpenAI)
    return GenerationClient(model_name="fake", api_key="fake")


def _text(text):
    return lambda messages, info: ModelResponse(parts=[TextPart(text)])


@pytest.mark.parametrize(
    "text, expected",
    [
        ("apple, Banana , cherry.", ["apple", "banana", "cherry"]),
        ("  ", []),
        (None, []),
        ("one,,two,", ["one", "two"]),
    ],
)
async def test_parse_word_list(text, expected):
    assert parse_word_list(text) == expected


async def test_word_list_uses_language_names_in_system_prompt(monkeypatch):
    captured = {}
    client = _make_client(monkeypatch, _text("Planet, orbit, comet"), captured)

    words = await client.generate_word_list("space travel", target_lang="de", native_lang="ja")

    assert words == ["planet", "orbit", "comet"]
    assert "German" in captured["system"]
    assert "Japanese" in captured["system"]
    assert "space travel" in captured["user"]


async def test_flashcard_languages_follow_the_request(monkeypatch):
    captured = {}

    def respond(messages, info):
        # the model answers with the wrong language pair
        args = content_for("eloquent", "fr", "es").model_dump(by_alias=True)
        return ModelResponse(parts=[ToolCallPart(info.output_tools[0].name, args)])

    client = _make_client(monkeypatch, respond, captured)

    content = await client.generate_flashcard_data("eloquent", "en", "zh")

    assert content.word == "eloquent"
    assert (content.target_language, content.native_language) == ("en", "zh")
    assert "WORD: eloquent" in captured["user"]


async def test_story_prompt_carries_title_words_and_request(monkeypatch):
    captured = {}
    client = _make_client(monkeypatch, _text("The **comet** passed the **orbit**."), captured)

    story = await client.generate_story("Space - AI Story", ["comet", "orbit", "nova"], user_prompt=" make it short ")

    assert story.startswith("The **comet**")
    assert "TITLE: Space - AI Story" in captured["user"]
    assert "WORDS: comet, orbit, nova" in captured["user"]
    assert "USER REQUEST: make it short" in captured["user"]


async def test_model_failure_raises_generation_error(monkeypatch):
    def respond(messages, info):
        raise ModelHTTPError(status_code=503, model_name="fake", body="unavailable")

    client = _make_client(monkeypatch, respond, {})

    with pytest.raises(GenerationError, match='"eloquent"'):
        await client.generate_flashcard_data("eloquent", "en", "zh")


async def test_speech_is_base64_pcm(monkeypatch, caplog):
    caplog.set_level(logging.DEBUG, logger="vocab_deck")
    captured = {}
    client = _make_client(monkeypatch, _text("unused"), captured)

    audio = await client.generate_speech("hello", "en")

    assert base64.b64decode(audio) == b"PCMDATA"
    assert captured["speech"][0]["input"] == "hello"
    assert captured["speech"][0]["response_format"] == "pcm"
    assert "24000 Hz PCM" in caplog.text


async def test_speech_failure_returns_none(monkeypatch):
    error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/audio/speech"))
    client = _make_client(monkeypatch, _text("unused"), {}, error=error)

    assert await client.generate_speech("hello", "en") is None


async def test_empty_speech_returns_none(monkeypatch):
    client = _make_client(monkeypatch, _text("unused"), {}, audio=b"")

    assert await client.generate_speech("hello", "en") is None


async def test_recognize_words_in_image_sends_the_image(monkeypatch):
    captured = {}
    client = _make_client(monkeypatch, _text("Cat, dog."), captured)
    image = BinaryContent(data=b"\x89PNG", media_type="image/png")

    words = await client.recognize_words_in_image(image)

    assert words == ["cat", "dog"]
    assert "image/png" in captured["user"]
