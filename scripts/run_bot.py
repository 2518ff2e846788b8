"""Run the bot locally against stdin.

Every input line simulates one group message::

    <chat_id> <user_id> [username] [thread_id]

Bot output (rank announcements, jokes) is written to stdout. Auto-post timers
run on real threads, so leave the process running to see scheduled jokes.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.adapters.console_sender import ConsoleMessageSender
from src.adapters.repository_factory import create_repository
from src.config.logging_config import get_logger, setup_logging
from src.config.settings import get_settings
from src.domain.exceptions import ChatBotError
from src.domain.models import ChatUser
from src.use_cases.bot_manager import ChatBotManager

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the chat rank bot on stdin")
    parser.add_argument(
        "--add-joke",
        action="append",
        default=[],
        metavar="TEXT",
        help="Store a joke before reading messages (repeatable)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    return parser.parse_args(argv)


def parse_line(line: str) -> tuple[int, ChatUser, int | None] | None:
    parts = line.split()
    if len(parts) < 2:
        return None
    try:
        chat_id = int(parts[0])
        user_id = int(parts[1])
        thread_id = int(parts[3]) if len(parts) > 3 else None
    except ValueError:
        return None
    username = parts[2] if len(parts) > 2 else None
    return chat_id, ChatUser(user_id=user_id, username=username), thread_id


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level, json_logs=args.json_logs or settings.json_logs)

    repository = create_repository(settings)
    bot = ChatBotManager(repository, ConsoleMessageSender(), settings)
    for joke in args.add_joke:
        bot.add_joke(joke)

    bot.start()
    try:
        for raw_line in sys.stdin:
            parsed = parse_line(raw_line)
            if parsed is None:
                logger.warning("input_line_skipped", line=raw_line.strip())
                continue
            chat_id, user, thread_id = parsed
            try:
                bot.handle_message(user, chat_id, thread_id)
            except ChatBotError as exc:
                logger.error("message_handling_failed", chat_id=chat_id, error=str(exc))
    except KeyboardInterrupt:
        logger.info("bot_interrupted")
    finally:
        bot.stop()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
