import json

import pytest

from vocab_deck.errors import GenerationError
from vocab_deck.model import CardDeck, WordCard
from vocab_deck.orchestrator import VocabOrchestrator, merge_word_input, parse_word_input
from vocab_deck.store import DECKS_KEY, WORDS_KEY

pytestmark = pytest.mark.asyncio


@pytest.fixture
def orchestrator(store, fake_client):
    return VocabOrchestrator(store, fake_client, debounce=0)


async def test_parse_word_input():
    assert parse_word_input("Apple, banana\n\ncherry ,") == ["apple", "banana", "cherry"]


@pytest.mark.parametrize(
    "existing, new, expected",
    [
        ("", ["a", "b"], "a,\nb"),
        ("a", ["a", "b"], "a,\nb"),
        ("a,\nb", ["a"], "a,\nb"),
        ("  ", [], "  "),
    ],
)
async def test_merge_word_input(existing, new, expected):
    assert merge_word_input(existing, new) == expected


async def test_init_upgrades_legacy_storage(kv, store, fake_client):
    kv.set(DECKS_KEY, json.dumps([{"id": "d1", "cards": [{"id": "w1", "word": "legacy"}]}]))

    VocabOrchestrator(store, fake_client)

    assert json.loads(kv.get(DECKS_KEY))[0]["cards"] == ["w1"]
    assert json.loads(kv.get(WORDS_KEY))[0]["word"] == "legacy"


async def test_create_deck_saves_words_then_deck(orchestrator, store, fake_client):
    store.set_target_language("de")

    deck = await orchestrator.create_deck_async(" Space ", ["comet", "Orbit"])

    assert deck.title == "Space"
    assert deck.target_language == "de" and deck.native_language == "zh"
    words = {w.id: w.word for w in store.get_words()}
    assert [words[card_id] for card_id in deck.cards] == ["comet", "orbit"]
    assert store.get_decks()[0].id == deck.id


async def test_create_deck_validates_input(orchestrator, fake_client):
    with pytest.raises(ValueError):
        await orchestrator.create_deck_async("Title", [" "])
    with pytest.raises(ValueError):
        await orchestrator.create_deck_async("  ", ["word"])
    assert fake_client.data_calls == []


async def test_failed_generation_saves_no_deck(store, make_client):
    orchestrator = VocabOrchestrator(store, make_client(fail_on={"b"}))

    with pytest.raises(GenerationError):
        await orchestrator.create_deck_async("Deck", ["a", "b"])

    assert store.get_decks() == []
    assert store.get_words() == []


async def test_create_words_reuses_existing(orchestrator, store, fake_client):
    first = await orchestrator.create_words_async(["nova"])
    second = await orchestrator.create_words_async(["nova", "quasar"])

    assert fake_client.data_calls == ["nova", "quasar"]
    assert second[0].id != first[0].id
    assert len(store.get_words()) == 3


async def test_add_words_to_deck_returns_unsaved_deck(orchestrator, library, store):
    deck = CardDeck(id="d1", title="D", cards=["x"])
    library.save_deck(deck)

    updated = await orchestrator.add_words_to_deck_async(deck, ["star"])

    assert updated.cards[0] == "x" and len(updated.cards) == 2
    assert store.get_decks()[0].cards == ["x"]
    assert [w.word for w in store.get_words()] == ["star"]


async def test_regenerate_keeps_identity_audio_and_image(orchestrator, store, fake_client):
    card = WordCard(id="w1", word="comet", audio_pronunciation="OLD=", image="data:image/png;base64,AA==")
    store.save_words([card])

    regenerated = await orchestrator.regenerate_word_async(card)

    assert regenerated.id == "w1"
    assert regenerated.audio_pronunciation == "OLD="
    assert regenerated.image == card.image
    assert regenerated.definitions[0].definition == "meaning of comet"
    assert store.get_words()[0].definitions[0].definition == "meaning of comet"
    assert fake_client.speech_calls == []


async def test_regenerate_can_drop_audio(orchestrator, store):
    card = WordCard(id="w1", word="comet", audio_pronunciation="OLD=")
    store.save_words([card])

    regenerated = await orchestrator.regenerate_word_async(card, keep_audio=False)

    assert regenerated.audio_pronunciation is None


async def test_story_snapshots_deck_words(orchestrator, store, fake_client):
    deck = await orchestrator.create_deck_async("Space", ["comet", "orbit", "nova"])

    story = await orchestrator.generate_story_async(deck, user_prompt="funny")

    assert story.title == "Space - AI Story"
    assert story.deck_id == deck.id
    assert story.words == ["comet", "orbit", "nova"]
    assert story.content == "**comet** **orbit** **nova**"
    assert fake_client.story_calls == [{"title": "Space", "words": ["comet", "orbit", "nova"], "prompt": "funny"}]
    assert store.get_stories()[0].id == story.id


async def test_story_needs_three_words(orchestrator, fake_client):
    deck = await orchestrator.create_deck_async("Tiny", ["one", "two"])

    with pytest.raises(ValueError, match="at least 3"):
        await orchestrator.generate_story_async(deck)
    assert fake_client.story_calls == []


async def test_generate_word_list_merges_into_input(orchestrator, fake_client):
    fake_client.word_list = ["comet", "orbit"]

    text = await orchestrator.generate_word_list_async("space", existing_text="comet")

    assert text == "comet,\norbit"


async def test_edit_deck_uses_draft_slot(orchestrator, library):
    deck = CardDeck(id="d1", title="Old")
    library.save_deck(deck)

    editor = orchestrator.edit_deck(deck)
    await editor.add_words(["galaxy"])
    saved = editor.save()

    assert library.get_deck("d1").cards == saved.cards
    assert [c.word for c in editor.cards()] == ["galaxy"]
