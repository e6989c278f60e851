import argparse
import asyncio
import sys
from pathlib import Path

from langfuse import get_client
from pydantic_ai import Agent

from .agent import load_image
from .config import SUPPORTED_CONTENT_LANGUAGES, Settings
from .errors import GenerationError, ImportValidationError, StoreError
from .logging_utils import logs_handler
from .orchestrator import VocabOrchestrator, parse_word_input
from .study import StudySession

logger = logs_handler.get_logger()


def _progress(message: str) -> None:
    print(f"  {message}", flush=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vocab-deck", description="AI vocabulary flashcards")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-deck", help="generate a new deck")
    create.add_argument("title")
    create.add_argument("words", help="comma or newline separated words")

    words = sub.add_parser("add-words", help="generate independent words")
    words.add_argument("words")

    add = sub.add_parser("add-to-deck", help="generate words into an existing deck")
    add.add_argument("deck_id")
    add.add_argument("words")

    suggest = sub.add_parser("suggest", help="ask the model for a word list")
    suggest.add_argument("prompt")
    suggest.add_argument("--image", type=Path)

    story = sub.add_parser("story", help="generate a story from a deck")
    story.add_argument("deck_id")
    story.add_argument("--prompt", default="")
    story.add_argument("--image", type=Path)

    study = sub.add_parser("study", help="review a deck in the terminal")
    study.add_argument("deck_id")

    sub.add_parser("list", help="show decks, words and stories")

    delete = sub.add_parser("delete", help="delete a deck, word or story")
    delete.add_argument("kind", choices=["deck", "word", "story"])
    delete.add_argument("record_id")

    export = sub.add_parser("export", help="write a JSON backup")
    export.add_argument("path", type=Path)

    restore = sub.add_parser("import", help="replace everything with a JSON backup")
    restore.add_argument("path", type=Path)

    languages = sub.add_parser("languages", help="show or set content languages")
    languages.add_argument("--native", choices=sorted(SUPPORTED_CONTENT_LANGUAGES))
    languages.add_argument("--target", choices=sorted(SUPPORTED_CONTENT_LANGUAGES))
    return parser


def _require_deck(app: VocabOrchestrator, deck_id: str):
    deck = app.library.get_deck(deck_id)
    if deck is None:
        raise SystemExit(f"No deck with id {deck_id}")
    return deck


def _study(app: VocabOrchestrator, deck_id: str) -> None:
    deck = _require_deck(app, deck_id)
    session = StudySession(app.library.resolve_cards(deck))
    if session.is_complete:
        print("This deck is empty.")
        return
    while not session.is_complete:
        card = session.current
        input(f"\n[round {session.rounds}, {session.remaining} left] {card.word}  (enter to flip)")
        session.flip()
        for definition in card.definitions:
            print(f"  - {definition.definition} / {definition.native_definition}")
        answer = input("known? [y/N] ").strip().lower()
        if answer == "y":
            session.mark_known()
        else:
            session.mark_learning()
    print(f'Study complete! You have reviewed all cards in "{deck.title}".')


async def _run(app: VocabOrchestrator, args: argparse.Namespace) -> None:
    library = app.library
    if args.command == "create-deck":
        deck = await app.create_deck_async(args.title, parse_word_input(args.words), on_progress=_progress)
        print(f"Deck {deck.id}: '{deck.title}' with {len(deck.cards)} cards")
    elif args.command == "add-words":
        cards = await app.create_words_async(parse_word_input(args.words), on_progress=_progress)
        print(f"Saved {len(cards)} words")
    elif args.command == "add-to-deck":
        editor = app.edit_deck(_require_deck(app, args.deck_id))
        await editor.add_words(parse_word_input(args.words), on_progress=_progress)
        deck = editor.save()
        print(f"Deck {deck.id} now has {len(deck.cards)} cards")
    elif args.command == "suggest":
        image = load_image(args.image) if args.image else None
        print(await app.generate_word_list_async(args.prompt, image=image))
    elif args.command == "story":
        image = load_image(args.image) if args.image else None
        story = await app.generate_story_async(_require_deck(app, args.deck_id), args.prompt, image)
        print(f"# {story.title}\n\n{story.content}")
    elif args.command == "study":
        _study(app, args.deck_id)
    elif args.command == "list":
        for deck in app.store.get_decks():
            print(f"deck  {deck.id}  {deck.title} ({len(deck.cards)} cards)")
        for word in app.store.get_words():
            print(f"word  {word.id}  {word.word}")
        for story in app.store.get_stories():
            print(f"story {story.id}  {story.title} ({len(story.words)} words)")
    elif args.command == "delete":
        {
            "deck": library.delete_deck,
            "word": library.delete_word,
            "story": library.delete_story,
        }[args.kind](args.record_id)
    elif args.command == "export":
        args.path.write_text(library.export_json(), encoding="utf-8")
        print(f"Backup written to {args.path}")
    elif args.command == "import":
        library.import_data(args.path.read_bytes())
        print("Data imported successfully!")
    elif args.command == "languages":
        if args.native:
            app.store.set_native_language(args.native)
        if args.target:
            app.store.set_target_language(args.target)
        print(f"native={app.store.get_native_language()} target={app.store.get_target_language()}")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = Settings.from_env()
    logs_handler.setup_logging(level=settings.log_level)
    Agent.instrument_all()
    app = VocabOrchestrator.from_settings(settings)
    try:
        asyncio.run(_run(app, args))
    except (GenerationError, ImportValidationError, StoreError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        get_client().flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
