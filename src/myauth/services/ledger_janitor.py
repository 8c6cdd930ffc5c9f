"""Ledger janitor — purges expired refresh tokens in the background.

Learn: Expired refresh tokens already fail decoding, so leaving them in
the ledger is harmless but grows memory forever. The in-memory ledger
purges lazily on lookup; this loop sweeps the rest. Redis ledgers expire
keys on their own, so the sweep is a no-op there.

This runs as a background task in the FastAPI lifespan.

    Usage:
        janitor = LedgerJanitor(ledger)
        asyncio.create_task(janitor.run_loop())
"""

import asyncio

import structlog

from myauth.auth.ledger import RevocationLedger

logger = structlog.get_logger()


class LedgerJanitor:
    def __init__(self, ledger: RevocationLedger, poll_interval: float = 300.0):
        self.ledger = ledger
        self.poll_interval = poll_interval
        self._running = False

    async def run_loop(self) -> None:
        """Main loop — purge, then sleep."""
        self._running = True
        logger.info("ledger_janitor.started", poll_interval=self.poll_interval)

        while self._running:
            try:
                await self.purge_once()
            except Exception:
                logger.exception("ledger_janitor.error")
            await asyncio.sleep(self.poll_interval)

    async def purge_once(self) -> int:
        purged = await self.ledger.purge_expired()
        if purged:
            logger.info("ledger.purged", count=purged)
        return purged

    def stop(self) -> None:
        """Signal the janitor to stop."""
        self._running = False
        logger.info("ledger_janitor.stopping")
