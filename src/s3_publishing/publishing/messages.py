"""
Message collector for operator-facing publishing problems.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Severity(Enum):
    NOTICE = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


@dataclass(frozen=True)
class CollectedMessage:
    message: str
    severity: Severity = Severity.ERROR


class MessageCollector:
    """
    Collects human-readable failure messages during a run.

    Messages are logged as they arrive and kept until flushed, so a caller
    can surface them to an operator once the run has finished.
    """

    def __init__(self) -> None:
        self._messages: list[CollectedMessage] = []

    def append(self, message: str, severity: Severity = Severity.ERROR) -> None:
        logger.log(severity.value, message)
        self._messages.append(CollectedMessage(message, severity))

    def has_messages(self) -> bool:
        return bool(self._messages)

    def flush(self) -> list[CollectedMessage]:
        """Return and clear the collected messages."""
        messages, self._messages = self._messages, []
        return messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[CollectedMessage]:
        return iter(list(self._messages))
