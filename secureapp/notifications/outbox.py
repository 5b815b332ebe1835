"""
Mail outbox with retry and dead-lettering.

Callers enqueue a message and return immediately. A background worker
(or an explicit `flush()`) hands each entry to the configured sender,
retrying with exponential backoff. Entries that exhaust their attempts
are moved to `dead_letters`, which is the failure channel callers and the
health endpoint can inspect.
"""
import heapq
import itertools
import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .mailer import EmailSender, MailDeliveryError, MailMessage
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Configurable retry with exponential backoff and jitter."""

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
        jitter: bool = True,
    ) -> None:
        """Configure retry behavior.

        Args:
            max_attempts: Maximum number of delivery attempts (including first).
            base_delay: Initial delay in seconds before first retry.
            max_delay: Cap on delay in seconds.
            jitter: If True, multiply delays by a random factor in [0.5, 1.5].
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if base_delay > max_delay:
            raise ValueError("base_delay must be <= max_delay")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter

    def should_retry(self, attempt: int) -> bool:
        """Return True if another attempt is allowed (attempt is 1-based)."""
        return 1 <= attempt < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Return delay in seconds after the given 1-based attempt."""
        if attempt < 1:
            return 0.0
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return float(max(0.0, delay))


@dataclass
class OutboxEntry:
    """A queued message and its delivery history."""
    message: MailMessage
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    attempts: int = 0
    status: str = "pending"  # pending | delivered | dead
    last_error: Optional[str] = None


class MailOutbox:
    """
    Non-blocking mail dispatch.

    Example usage:
        outbox = MailOutbox(SmtpEmailSender(host="smtp.example.com"))
        outbox.start()
        outbox.enqueue(MailMessage(to="user@example.com", subject="...", text_body="..."))
        ...
        outbox.stop()

    Tests can skip the worker and call `flush()` to deliver synchronously.
    """

    def __init__(
        self,
        sender: EmailSender,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sender = sender
        self.retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self._queue: List[Tuple[float, int, OutboxEntry]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._worker: Optional[threading.Thread] = None
        self._running = False
        self.delivered_count = 0
        self.dead_letters: List[OutboxEntry] = []

    # ==========================================
    # Enqueue
    # ==========================================

    def enqueue(self, message: MailMessage) -> OutboxEntry:
        """
        Queue a message for delivery and return without waiting.
        """
        entry = OutboxEntry(message=message)
        with self._cond:
            heapq.heappush(self._queue, (self._clock(), next(self._seq), entry))
            self._cond.notify()
        logger.debug(f"Queued mail {entry.entry_id} to {mask_email(message.to)}")
        return entry

    # ==========================================
    # Delivery
    # ==========================================

    def _attempt(self, entry: OutboxEntry) -> Optional[float]:
        """
        Try one delivery.

        Returns:
            Delay before the next attempt, or None if the entry is finished.
        """
        entry.attempts += 1
        try:
            self.sender.send(entry.message)
        except MailDeliveryError as e:
            entry.last_error = str(e)
            if self.retry_policy.should_retry(entry.attempts):
                delay = self.retry_policy.delay_for_attempt(entry.attempts)
                logger.warning(
                    f"Mail {entry.entry_id} attempt {entry.attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                return delay
            self._dead_letter(entry)
            logger.error(
                f"Mail {entry.entry_id} to {mask_email(entry.message.to)} dead-lettered "
                f"after {entry.attempts} attempts: {e}"
            )
            return None
        except Exception as e:
            # Unexpected sender errors are not retried
            entry.last_error = repr(e)
            self._dead_letter(entry)
            logger.exception(
                f"Mail {entry.entry_id} to {mask_email(entry.message.to)} dead-lettered "
                f"after unexpected sender error"
            )
            return None

        entry.status = "delivered"
        with self._cond:
            self.delivered_count += 1
        return None

    def _dead_letter(self, entry: OutboxEntry) -> None:
        entry.status = "dead"
        with self._cond:
            self.dead_letters.append(entry)

    def flush(self) -> int:
        """
        Deliver every queued entry now, ignoring backoff delays.

        Failed entries are retried immediately until they are delivered or
        dead-lettered.

        Returns:
            Number of entries processed to completion.
        """
        processed = 0
        while True:
            with self._cond:
                if not self._queue:
                    return processed
                _, _, entry = heapq.heappop(self._queue)
            while self._attempt(entry) is not None:
                pass
            processed += 1

    def _run(self) -> None:
        while True:
            with self._cond:
                while self._running:
                    if not self._queue:
                        self._cond.wait()
                        continue
                    due = self._queue[0][0]
                    now = self._clock()
                    if due > now:
                        self._cond.wait(due - now)
                        continue
                    break
                if not self._running:
                    return
                _, _, entry = heapq.heappop(self._queue)

            delay = self._attempt(entry)
            if delay is not None:
                with self._cond:
                    heapq.heappush(self._queue, (self._clock() + delay, next(self._seq), entry))

    def start(self) -> None:
        """Start the background delivery worker."""
        with self._cond:
            if self._running:
                return
            self._running = True
        self._worker = threading.Thread(target=self._run, name="mail-outbox", daemon=True)
        self._worker.start()
        logger.info("Mail outbox worker started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the worker. Entries still queued stay in the outbox."""
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._worker is not None:
            self._worker.join(timeout)
            self._worker = None
        logger.info("Mail outbox worker stopped")

    # ==========================================
    # Inspection
    # ==========================================

    def failures_for(self, recipient: str) -> List[OutboxEntry]:
        """Dead-lettered entries addressed to `recipient`."""
        with self._cond:
            return [e for e in self.dead_letters if e.message.to == recipient]

    def stats(self) -> Dict[str, object]:
        with self._cond:
            return {
                "pending": len(self._queue),
                "delivered": self.delivered_count,
                "dead_letters": len(self.dead_letters),
                "worker_running": (
                    self._running and self._worker is not None and self._worker.is_alive()
                ),
            }
