"""Stand-in for the Gmail connector.

There is no OAuth flow yet: ``connect`` always succeeds and
``fetch_recent_messages`` returns a fixed pair of notifications.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from categorizer import Categorizer
from message_parser import parse_messages
from schemas import MailMessage, TransactionIn


class MailSourceNotConnected(RuntimeError):
    pass


@dataclass(frozen=True)
class MailSourceState:
    is_connected: bool
    last_sync: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MockMailSource:
    def __init__(self, clock: Callable[[], str] = _now_iso) -> None:
        self._clock = clock
        self.state = MailSourceState(is_connected=False)

    def connect(self) -> MailSourceState:
        # TODO: replace with the Gmail OAuth consent flow once client credentials exist.
        self.state = MailSourceState(is_connected=True, last_sync=self._clock())
        return self.state

    def disconnect(self) -> MailSourceState:
        self.state = MailSourceState(is_connected=False)
        return self.state

    def fetch_recent_messages(self) -> list[MailMessage]:
        if not self.state.is_connected:
            raise MailSourceNotConnected("Connect the mail source before syncing")

        received_at = self._clock()
        self.state = MailSourceState(is_connected=True, last_sync=received_at)
        return [
            MailMessage(
                id="mock-1",
                subject="PAYNOW RECEIVED: SGD 48.10 from JOHN DOE",
                snippet="Ref 1234, Lunch split",
                received_at=received_at,
            ),
            MailMessage(
                id="mock-2",
                subject="Card Transaction: SGD 12.90 SHPEE*12345",
                snippet="Your UOB Visa was charged SGD 12.90 at SHPEE*12345",
                received_at=received_at,
            ),
        ]

    def transform_to_transactions(
        self,
        messages: list[MailMessage],
        *,
        categorizer: Optional[Categorizer] = None,
    ) -> list[TransactionIn]:
        return parse_messages(messages, categorizer=categorizer)
