"""Fire-and-forget email delivery.

Learn: Registration and password reset must not fail (or even slow down)
because the mail server is down. dispatch() schedules delivery as an
asyncio task and returns immediately; failures are logged, never raised.

Pending tasks are tracked so shutdown can drain() them instead of
dropping half-sent mail. Tests use background=False to deliver inline.
"""

import asyncio

import structlog

from myauth.mail.sender import EmailSender, redact_email

logger = structlog.get_logger()


class EmailDispatcher:
    def __init__(self, sender: EmailSender, *, background: bool = True):
        self.sender = sender
        self.background = background
        self._pending: set[asyncio.Task] = set()

    async def dispatch(self, to_address: str, subject: str, html_body: str) -> None:
        if not self.background:
            await self._deliver(to_address, subject, html_body)
            return
        task = asyncio.create_task(self._deliver(to_address, subject, html_body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, to_address: str, subject: str, html_body: str) -> bool:
        try:
            sent = await self.sender.send(to_address, subject, html_body)
        except Exception:
            logger.exception("email.failed", to=redact_email(to_address), subject=subject)
            return False
        if not sent:
            logger.warning("email.not_sent", to=redact_email(to_address), subject=subject)
        return sent

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
