"""imgchat CLI entrypoints."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import signal
import sys
import threading
from pathlib import Path

from .chat.transcript import extract_title, is_reply_complete, parse_transcript, session_id_from_path
from .config import DEFAULT_TITLE_MAX_LEN, Config, ConfigError, load_config
from .log import configure_logging
from .pipeline.runner import Pipeline
from .providers import PersonaBook, build_image_generator, build_prompt_generator
from .server.viewers import ViewerHub, ViewerServer
from .utils import ensure_dir, load_dotenv

logger = logging.getLogger("imgchat_engine.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="imgchat", description="Illustrate live assistant sessions")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Watch transcripts and serve the viewer (default)")
    serve.add_argument("--port", type=int, help="HTTP/WebSocket port (overrides SERVER_PORT)")
    serve.add_argument("--watch-dir", dest="watch_dir", help="Transcript root (overrides CLAUDE_PROJECTS_DIR)")
    serve.add_argument("--debug", action="store_true", help="Verbose logging (same as DEBUG=1)")

    parse = sub.add_parser("parse", help="Print the turns parsed from a transcript file")
    parse.add_argument("path", help="Path to a .jsonl transcript")
    parse.add_argument("--title-max", dest="title_max", type=int, default=DEFAULT_TITLE_MAX_LEN)

    return parser


def _apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    changes: dict[str, object] = {}
    if getattr(args, "port", None):
        changes["server_port"] = int(args.port)
    if getattr(args, "watch_dir", None):
        changes["projects_dir"] = Path(args.watch_dir).expanduser()
    if getattr(args, "debug", False):
        changes["debug"] = True
    return dataclasses.replace(config, **changes) if changes else config


def _handle_serve(args: argparse.Namespace) -> int:
    try:
        config = _apply_overrides(load_config(), args)
    except ConfigError as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return 1
    configure_logging(config.debug)

    if not config.projects_dir.is_dir():
        print(f"config error: watch directory does not exist: {config.projects_dir}", file=sys.stderr)
        return 1

    personas = PersonaBook.load(config.characters_dir, config.character_file)
    try:
        ensure_dir(config.image_dir)
        prompt_generator = build_prompt_generator(config, personas)
        image_generator = build_image_generator(config)
    except (ConfigError, RuntimeError, OSError) as exc:
        print(f"startup error: {exc}", file=sys.stderr)
        return 1

    hub = ViewerHub()
    server = ViewerServer(hub, config.image_dir, host=config.server_host, port=config.server_port)
    pipeline = Pipeline(config, prompt_generator, image_generator, hub)

    shutdown = threading.Event()

    def _on_signal(signum: int, _frame: object) -> None:
        shutdown.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        server.start()
        pipeline.start()
    except OSError as exc:
        print(f"startup error: {exc}", file=sys.stderr)
        pipeline.stop()
        server.stop()
        return 1

    logger.info("imgchat started")
    logger.info("  Web UI: http://localhost:%s", server.bound_port)
    logger.info("  Watching: %s", config.projects_dir)
    logger.info("  Generate interval: %.0fs", config.generate_interval_s)
    logger.info("  Backends: prompt=%s image=%s", prompt_generator.name, image_generator.name)

    while not shutdown.wait(0.5):
        pass

    logger.info("shutting down...")
    pipeline.stop()
    server.stop(grace_s=5.0)
    return 0


def _handle_parse(args: argparse.Namespace) -> int:
    path = Path(args.path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        print(f"cannot read {path}: {exc}", file=sys.stderr)
        return 1
    turns = parse_transcript(data)
    payload = {
        "sessionId": session_id_from_path(path),
        "title": extract_title(turns, args.title_max),
        "replyComplete": is_reply_complete(turns),
        "turns": [turn.to_dict() for turn in turns],
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command in (None, "serve"):
        if args.command is None:
            args = parser.parse_args(["serve"])
        raise SystemExit(_handle_serve(args))
    if args.command == "parse":
        raise SystemExit(_handle_parse(args))
    parser.print_help()
    raise SystemExit(1)


if __name__ == "__main__":
    main()
