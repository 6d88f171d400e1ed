import logging
import asyncio
from typing import Any, Dict, Optional
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncEngine
from core.config import settings
from core.database import create_engine_from_settings
from ingestion.runner import IngestionRunner

logger = logging.getLogger(__name__)


def create_sqs_client():
    """SQS client; the receive long-poll must fit inside the read timeout"""
    return boto3.client(
        "sqs",
        region_name=settings.AWS_REGION,
        config=Config(
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT + settings.QUEUE_WAIT_TIME_SECONDS,
            retries={"max_attempts": 3, "mode": "standard"},
        ),
    )


class QueuePoller:
    """
    Long-poll the ingestion queue on an interval and run each message.

    A message is deleted once its job reached a terminal state (or the body
    was unusable); messages left undeleted are redelivered by the queue.
    """

    def __init__(
        self,
        queue_url: Optional[str] = None,
        sqs_client=None,
        runner: Optional[IngestionRunner] = None,
        engine: Optional[AsyncEngine] = None,
        interval_seconds: Optional[int] = None
    ):
        self.queue_url = queue_url or settings.INGESTION_QUEUE_URL
        if not self.queue_url:
            raise ValueError("INGESTION_QUEUE_URL is not configured")

        self._owns_engine = runner is None and engine is None
        if runner is None:
            engine = engine or create_engine_from_settings()
            runner = IngestionRunner.from_engine(engine)
        self.engine = engine
        self.runner = runner

        self.sqs = sqs_client if sqs_client is not None else create_sqs_client()
        self.interval_seconds = interval_seconds or settings.QUEUE_POLL_INTERVAL_SECONDS
        self.scheduler = AsyncIOScheduler()

    async def run_poll_job(self):
        """Job to drain one receive from the queue"""
        logger.debug("Scheduler: Polling ingestion queue")
        try:
            processed = await self.poll_once()
            if processed:
                logger.info(f"Scheduler: Processed {processed} queue messages")
        except Exception as e:
            logger.error(f"Scheduler: Queue poll failed - {e}")

    async def poll_once(self) -> int:
        """
        Receive up to QUEUE_MAX_MESSAGES messages and process them in order.

        Returns:
            Number of messages received
        """
        response = await asyncio.to_thread(
            self.sqs.receive_message,
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=settings.QUEUE_MAX_MESSAGES,
            WaitTimeSeconds=settings.QUEUE_WAIT_TIME_SECONDS,
        )
        messages = response.get("Messages", [])

        for message in messages:
            record = {"messageId": message.get("MessageId"), "body": message.get("Body")}
            summary = await self.runner.handle_event({"Records": [record]})
            logger.debug(f"Message {record['messageId']} finished: {self._outcome(summary)}")
            await self._delete(message)

        return len(messages)

    async def _delete(self, message: Dict[str, Any]):
        try:
            await asyncio.to_thread(
                self.sqs.delete_message,
                QueueUrl=self.queue_url,
                ReceiptHandle=message["ReceiptHandle"],
            )
        except (ClientError, BotoCoreError) as e:
            # Redelivery reprocesses the file; the upsert keeps that harmless
            logger.error(f"Failed to delete message {message.get('MessageId')}: {e}")

    @staticmethod
    def _outcome(summary: Dict[str, Any]) -> str:
        results = summary.get("results") or [{}]
        return results[0].get("status", "unknown")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_poll_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="ingestion_queue_poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Queue poller started for {self.queue_url} (every {self.interval_seconds}s)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Queue poller stopped")

    async def close(self):
        """Stop polling and release the engine this poller created"""
        self.stop()
        if self._owns_engine and self.engine is not None:
            await self.engine.dispose()
