"""Publishes translate-set tasks to the translator worker over RabbitMQ."""

import asyncio
import logging
from typing import Optional

import aio_pika
from aio_pika import Message
from aio_pika.abc import AbstractChannel, AbstractConnection

from common.config import settings
from common.schemas import TranslateSetTask

logger = logging.getLogger(__name__)


class TranslationOrchestrator:
    """Owns the RabbitMQ connection used to enqueue translation runs."""

    def __init__(self, queue_name: Optional[str] = None):
        self.connection: Optional[AbstractConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self.queue_name = queue_name or settings.translation_queue_name
        self._reconnect_lock = asyncio.Lock()

    async def connect(self, max_retries: int = 10, retry_delay: Optional[float] = None) -> None:
        """
        Open the connection and declare the durable translate queue.

        Failed attempts back off exponentially up to
        ``settings.rabbitmq_reconnect_max_delay``. After the last failure the
        orchestrator stays disconnected and ``enqueue_translate_task`` reports
        False until a later reconnect succeeds.
        """
        delay = settings.rabbitmq_reconnect_initial_delay if retry_delay is None else retry_delay
        for attempt in range(1, max_retries + 1):
            try:
                self.connection = await aio_pika.connect_robust(settings.rabbitmq_url)
                self.channel = await self.connection.channel()
                await self.channel.declare_queue(self.queue_name, durable=True)
                logger.info(f"✅ Connected to RabbitMQ, publishing to {self.queue_name}")
                return
            except Exception as e:
                if attempt == max_retries:
                    logger.error(f"❌ RabbitMQ unreachable after {max_retries} attempts: {e}")
                    return
                logger.warning(
                    f"RabbitMQ connect attempt {attempt}/{max_retries} failed: {e}. "
                    f"Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, settings.rabbitmq_reconnect_max_delay)

    async def disconnect(self) -> None:
        if self.connection and not self.connection.is_closed:
            await self.connection.close()
            logger.info("Disconnected from RabbitMQ")

    async def is_healthy(self) -> bool:
        return bool(self.connection and not self.connection.is_closed and self.channel)

    async def ensure_connected(self) -> bool:
        """Reconnect when the connection dropped. Returns whether publishing is possible."""
        if await self.is_healthy():
            return True

        async with self._reconnect_lock:
            if not await self.is_healthy():
                logger.info("🔄 RabbitMQ connection lost, reconnecting...")
                await self.connect(max_retries=3)

        return await self.is_healthy()

    async def enqueue_translate_task(self, task: TranslateSetTask) -> bool:
        """
        Publish a translate task.

        Args:
            task: Task to publish

        Returns:
            True if the task was published, False otherwise
        """
        if not await self.ensure_connected():
            logger.error(f"❌ RabbitMQ unavailable, cannot enqueue job {task.job_id}")
            return False

        try:
            message = Message(
                body=task.model_dump_json().encode(),
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                content_type="application/json",
            )
            await self.channel.default_exchange.publish(message, routing_key=self.queue_name)
            logger.info(f"📤 Enqueued translate job {task.job_id} for set {task.set_id}")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to enqueue translate job {task.job_id}: {e}")
            return False


# Global orchestrator instance
orchestrator = TranslationOrchestrator()
