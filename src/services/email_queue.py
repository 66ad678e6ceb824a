"""Fire-and-forget email delivery through an in-process queue.

Request handlers hand jobs to the queue and return immediately. A single
worker task drains the queue and reports outcomes to the log only; callers
never learn whether a queued email was delivered.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from src.models.email import EmailJob, EmailTemplate
from src.services.email_service import EmailService

logger = structlog.get_logger(__name__)


class EmailQueue:
    """Bounded queue of outbound emails with one background worker."""

    def __init__(self, email_service: EmailService, max_size: int = 1000):
        self.email_service = email_service
        self._queue: asyncio.Queue[EmailJob] = asyncio.Queue(maxsize=max_size)
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(
        self,
        to: str,
        template: EmailTemplate,
        variables: dict[str, Any],
    ) -> bool:
        """Queue an email for background delivery.

        Never blocks and never raises.

        Returns:
            True if the job was queued, False if the queue was full
        """
        job = EmailJob(
            to=to,
            template=template,
            variables=variables,
            enqueued_at=datetime.now(timezone.utc),
        )
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.error(
                "email_queue_full",
                to=to,
                template=template.value,
                max_size=self._queue.maxsize,
            )
            return False

        logger.debug("email_queued", to=to, template=template.value, pending=self.pending)
        return True

    async def process_one(self, job: EmailJob) -> bool:
        """Deliver one job, logging the outcome.

        Returns:
            True if the email was sent, False otherwise
        """
        try:
            await self.email_service.send_email(job.to, job.template, job.variables)
            return True
        except Exception as e:
            logger.warning(
                "email_delivery_failed",
                to=job.to,
                template=job.template.value,
                error=str(e),
            )
            return False

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process_one(job)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        """Start the background worker (idempotent)."""
        if self.running:
            return
        self._worker = asyncio.create_task(self._run())
        logger.info("email_queue_started")

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain outstanding jobs, then cancel the worker.

        Args:
            timeout: Maximum seconds to wait for the queue to drain
        """
        if self._worker is None:
            return

        if self.pending:
            logger.info("draining_email_queue", count=self.pending)

        # join() also covers a job the worker has taken but not finished
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "email_queue_drain_timeout",
                remaining=self.pending,
                timeout=timeout,
            )

        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("email_queue_stopped")
