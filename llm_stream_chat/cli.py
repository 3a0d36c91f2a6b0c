#!/usr/bin/env python3
"""CLI entry point for LLM Stream Chat.

Usage:
    llm-stream-chat chat [options]          # Interactive streaming chat
    llm-stream-chat ask TEXT [options]      # One question, one answer

Options:
    --config PATH        Path to config.yaml (default: ~/.llm-stream-chat/config.yaml)
    --model NAME         Override the configured model
    --no-stream          Use single-shot completions
    --log-level LEVEL    Log level (default: WARNING)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .config import DEFAULT_CONFIG_PATH, ChatConfig, ChatModel, ConfigManager, apply_env_overrides
from .consumer import ConversationConsumer, TerminalConsumer
from .emitter import EventEmitter
from .events import ConversationRow
from .formatter import format_error, format_output
from .session import ChatSession

logger = logging.getLogger(__name__)

REPL_HELP = """Commands:
  /clear              Clear the conversation and history
  /retry              Re-send the last failed message
  /image PATH TEXT    Send an image (file path or URL) with text
  /show               Print the conversation with code blocks styled
  /quit               Exit
Press Ctrl-C while a response streams to cancel it."""


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-stream-chat",
        description="Stream chat completions to the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Interactive chat with the configured model
    llm-stream-chat chat

    # One-shot question without streaming
    llm-stream-chat ask "What is a monad?" --no-stream

    # Ask about an image
    llm-stream-chat ask "What is in this picture?" --image photo.jpg
""",
    )

    def add_common_options(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--config",
            type=Path,
            default=DEFAULT_CONFIG_PATH,
            help="Path to config.yaml",
        )
        p.add_argument(
            "--model",
            type=str,
            default=None,
            help="Model name (known: "
            + ", ".join(m.value for m in ChatModel)
            + ")",
        )
        p.add_argument(
            "--no-stream",
            action="store_true",
            help="Use single-shot completions instead of streaming",
        )
        p.add_argument(
            "--log-level",
            type=str,
            default="WARNING",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Log level (default: WARNING)",
        )

    subparsers = parser.add_subparsers(dest="command")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat")
    add_common_options(chat_parser)

    ask_parser = subparsers.add_parser("ask", help="Ask a single question")
    ask_parser.add_argument("text", type=str, help="Question text")
    ask_parser.add_argument(
        "--image",
        type=str,
        default=None,
        help="Image file path or URL to send with the question",
    )
    add_common_options(ask_parser)

    return parser


def setup_logging(level: str) -> None:
    """Configure logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def load_config(args: argparse.Namespace) -> ChatConfig:
    """Load config.yaml, then apply environment and command-line overrides."""
    config = apply_env_overrides(ConfigManager(args.config).load())
    if args.model:
        config.model = args.model
    if args.no_stream:
        config.stream = False
    return config


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------


@contextmanager
def _sigint_cancels(session: ChatSession) -> Iterator[None]:
    """Route Ctrl-C to ``session.cancel`` instead of exiting."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _send_image(session: ChatSession, text: str, image: str) -> ConversationRow:
    with _sigint_cancels(session):
        if image.startswith(("http://", "https://")):
            return await session.send_text_with_image(text, image)
        data = Path(image).read_bytes()
        return await session.send_text_with_image_bytes(text, data)


async def _consume(session: ChatSession, rows) -> ConversationRow | None:
    """Drive a send to completion; Ctrl-C cancels it instead of exiting."""
    final: ConversationRow | None = None
    with _sigint_cancels(session):
        async for row in rows:
            final = row
    if session.emitter is not None:
        await session.emitter.drain()
    return final


async def _ask(config: ChatConfig, text: str, image: str | None) -> int:
    session = ChatSession.from_config(config)
    try:
        if image is not None:
            row = await _send_image(session, text, image)
        else:
            row = await _consume(session, session.send_text(text))
    finally:
        await session.close()

    if row is None:
        return 1
    if row.response is not None and row.response_text:
        print(format_output(row.response))
    if row.error:
        print(format_error(row.error), file=sys.stderr)
        return 1
    return 0


async def _repl(config: ChatConfig) -> int:
    emitter = EventEmitter()
    conversation = ConversationConsumer()
    emitter.subscribe(conversation)
    emitter.subscribe(TerminalConsumer())
    session = ChatSession.from_config(config, emitter=emitter)

    print(f"Chatting with {config.model}. Type /help for commands.")
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "❯ ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue

            if line in ("/quit", "/exit"):
                break
            elif line == "/help":
                print(REPL_HELP)
            elif line == "/clear":
                await session.clear_history()
                await emitter.drain()
                print("Conversation cleared.")
            elif line == "/show":
                await emitter.drain()
                print(conversation.to_text())
            elif line == "/retry":
                failed = [row for row in session.rows if row.failed]
                if not failed:
                    print("Nothing to retry.")
                    continue
                await _consume(session, session.retry(failed[-1].id))
            elif line.startswith("/image "):
                parts = line.split(maxsplit=2)
                if len(parts) < 3:
                    print("Usage: /image PATH TEXT")
                    continue
                try:
                    await _send_image(session, parts[2], parts[1])
                except OSError as e:
                    print(format_error(f"Cannot read image: {e}"))
                await emitter.drain()
            else:
                await _consume(session, session.send_text(line))
    finally:
        await session.close()
        await emitter.drain()
        await emitter.close()
    return 0


# ---------------------------------------------------------------------------
# Main Entry Point
# ---------------------------------------------------------------------------


def main(args: list[str] | None = None) -> int:
    """Run the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = _create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 0

    setup_logging(parsed.log_level)

    try:
        config = load_config(parsed)
        config.validate()
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2

    if not config.api_key:
        print(
            "Error: no API key. Set OPENAI_API_KEY or provider.api_key in "
            f"{parsed.config}",
            file=sys.stderr,
        )
        return 2

    try:
        if parsed.command == "ask":
            return asyncio.run(_ask(config, parsed.text, parsed.image))
        return asyncio.run(_repl(config))
    except KeyboardInterrupt:
        return 130
    except OSError as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
