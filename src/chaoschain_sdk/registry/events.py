"""Polling subscriptions over registry event logs."""

import logging
from typing import Any, Callable, Optional

from web3 import Web3

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], None]


class EventSubscription:
    """Follows one contract event by polling ``get_logs``.

    Nothing runs in the background: each ``poll()`` fetches the logs
    emitted since the previous poll and hands them to the callback.
    A cancelled subscription stops delivering.
    """

    def __init__(
        self,
        web3: Web3,
        event: Any,
        callback: EventCallback,
        from_block: Optional[int] = None,
    ):
        """Initialize subscription.

        Args:
            web3: Web3 instance
            event: Contract event class, e.g. ``contract.events.Registered``
            callback: Called once per matching log
            from_block: First block to scan (defaults to the next block)
        """
        self.web3 = web3
        self._event = event
        self._callback = callback
        self._next_block = from_block if from_block is not None else web3.eth.block_number + 1
        self._active = True
        self.delivered = 0

    @property
    def active(self) -> bool:
        return self._active

    def poll(self) -> int:
        """Deliver logs emitted since the last poll.

        Returns:
            Number of logs delivered
        """
        if not self._active:
            return 0

        latest = self.web3.eth.block_number
        if latest < self._next_block:
            return 0

        logs = self._event().get_logs(from_block=self._next_block, to_block=latest)
        self._next_block = latest + 1

        for log in logs:
            if not self._active:
                break
            self._callback(log)
            self.delivered += 1

        if logs:
            logger.debug(f"Delivered {len(logs)} log(s) up to block {latest}")
        return len(logs)

    def cancel(self) -> None:
        """Stop delivering events."""
        self._active = False
