"""
JSON-lines fallback writer used when no graph database is configured.
"""

import os
import threading
from typing import Any, Dict

from ..models.core import Message
from .errors import PersistenceError
from .json_utils import to_json_line
from .logging_config import get_logger

logger = get_logger(__name__)


def message_record(message: Message) -> Dict[str, Any]:
    """Flat-file representation of a message; topics are omitted when empty."""
    record = {
        'messageId': message.id,
        'timestamp': message.timestamp,
        'sender': message.sender,
        'content': message.content,
        'embedding': list(message.embedding),
    }
    if message.topics:
        record['topics'] = list(message.topics)
    return record


class FlatFileWriter:
    """Appends one JSON object per message to a file."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        logger.info(f'Writing graph nodes to flat file: {path}')

    def append(self, message: Message) -> None:
        """
        Append a message as one JSON line.

        Args:
            message: Message to record

        Raises:
            PersistenceError: If the file cannot be written
        """
        line = to_json_line(message_record(message))
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with self._lock, open(self.path, 'a', encoding='utf-8') as f:
                f.write(line)
        except OSError as e:
            logger.error(f'Error writing to flat file {self.path}: {e}')
            raise PersistenceError(f'Failed to append message {message.id}: {e}')

        logger.debug(f'Appended message {message.id} to {self.path}')
