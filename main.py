"""TextQuest — console player and API launcher."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from textquest import storage
from textquest.engine import SessionEngine
from textquest.events import Events
from textquest.llm import HttpModelClient
from textquest.settings import EnvConfig, SettingsManager

ROOT = Path(__file__).parent

HELP = """\
Commands:
  <number>        choose an action
  <text>          type any action
  /undo           rewind the last action
  /save <name>    save into a slot
  /load <name>    load a slot
  /saves          list save slots
  /delete <name>  delete a slot
  /new            start a new game
  /export <file>  write the transcript
  /quit           leave (progress is autosaved)"""


def _print_new_entries(engine: SessionEngine, shown: int) -> int:
    for entry in engine.display_log[shown:]:
        print(entry.text)
    return len(engine.display_log)


def _print_actions(engine: SessionEngine) -> None:
    for i, action in enumerate(engine.current_actions, 1):
        print(f"  {i}. {action}")


async def play(engine: SessionEngine, new_game: bool) -> None:
    def on_event(event_type: str, data: dict) -> None:
        if event_type == Events.TURN_STARTED:
            print("Thinking...", end="", flush=True)
        elif event_type == Events.CHUNK and len(engine.streaming_text) % 80 < len(data["text"]):
            print(".", end="", flush=True)
        elif event_type in (Events.TURN_COMPLETED, Events.ERROR, Events.TURN_CANCELLED):
            rate = f" ({engine.tokens_per_second:.0f} tok/s)" if engine.tokens_per_second else ""
            print(rate + "\n")

    engine.events.subscribe(on_event)
    await engine.refresh_models()

    if new_game:
        await engine.start_new_game()
    else:
        await engine.resume()
    shown = _print_new_entries(engine, 0)

    while True:
        _print_actions(engine)
        try:
            line = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not line:
            continue

        cmd, _, arg = line.partition(" ")
        arg = arg.strip()
        if cmd == "/quit":
            break
        elif cmd == "/help":
            print(HELP)
            continue
        elif cmd == "/undo":
            if engine.undo_last_action():
                shown = 0
                print("\n" * 2 + "(undone)")
            else:
                print("Nothing to undo.")
        elif cmd == "/save" and arg:
            slot = engine.save_game(arg, arg)
            print(f"Saved '{slot.name}' ({slot.message_count} messages).")
            continue
        elif cmd == "/load" and arg:
            if engine.load_game(arg):
                shown = 0
            else:
                print(f"No save named '{arg}'.")
        elif cmd == "/saves":
            for slot in engine.list_save_slots():
                print(f"  {slot.id:20} {slot.saved_at:%Y-%m-%d %H:%M}  {slot.message_count} messages")
            continue
        elif cmd == "/delete" and arg:
            print("Deleted." if engine.delete_save_slot(arg) else f"No save named '{arg}'.")
            continue
        elif cmd == "/new":
            await engine.start_new_game()
        elif cmd == "/export" and arg:
            Path(arg).write_text(engine.export_transcript(), encoding="utf-8")
            print(f"Transcript written to {arg}")
            continue
        elif cmd.startswith("/"):
            print(HELP)
            continue
        else:
            action = line
            if line.isdigit() and 1 <= int(line) <= len(engine.current_actions):
                action = engine.current_actions[int(line) - 1]
            await engine.perform_action(action)

        shown = _print_new_entries(engine, shown)


def select_model(kv: storage.KeyValueStore, model: str) -> None:
    """Persist ``model`` as the selected model for the console and the API alike."""
    SettingsManager(kv).update(selected_model=model)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="TextQuest — an LLM-driven text adventure")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Save/settings directory (default: $TEXTQUEST_DATA_DIR or ./data)")
    parser.add_argument("--model", default=None,
                        help="Model to play with (saved as the selected model)")
    parser.add_argument("--new", action="store_true",
                        help="Start a new game instead of resuming the autosave")
    parser.add_argument("--serve", action="store_true",
                        help="Run the HTTP API instead of the console player")
    parser.add_argument("--log-level", default="WARNING",
                        help="Logging level (default: WARNING)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = EnvConfig.from_env(ROOT / ".env")
    data_dir = args.data_dir or config.data_dir
    kv = storage.JsonFileStore(data_dir)
    if args.model:
        select_model(kv, args.model)

    if args.serve:
        import uvicorn

        os.environ["TEXTQUEST_DATA_DIR"] = str(data_dir.resolve())
        print(f"Starting API on http://{config.host}:{config.port}/api ...")
        uvicorn.run("textquest.app:create_app", factory=True, host=config.host, port=config.port)
        return

    client = HttpModelClient(
        config.model_url,
        api_key=config.api_key,
        provider_format=config.provider_format,
    )
    engine = SessionEngine(client, kv)

    try:
        asyncio.run(play(engine, new_game=args.new))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
