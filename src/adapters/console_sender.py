"""Message sender that writes bot output to a text stream.

Used by the local runner script in place of a messaging platform client.
"""

import sys
import threading
from typing import TextIO

from src.config.logging_config import get_logger
from src.domain.exceptions import DeliveryError

logger = get_logger(__name__)


class ConsoleMessageSender:
    """``MessageSenderProtocol`` implementation printing to a stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def send_message(
        self, chat_id: int, text: str, thread_id: int | None = None
    ) -> None:
        target = f"{chat_id}/{thread_id}" if thread_id is not None else str(chat_id)
        try:
            with self._lock:
                self._stream.write(f"[{target}] {text}\n")
                self._stream.flush()
        except (OSError, ValueError) as e:
            raise DeliveryError(chat_id, str(e)) from e

        logger.debug("console_message_sent", chat_id=chat_id, thread_id=thread_id)
