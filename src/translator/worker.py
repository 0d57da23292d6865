"""Translator worker consuming translate-set tasks from RabbitMQ."""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
from pydantic import ValidationError

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.admission_gate import SingleFlightGate  # noqa: E402
from common.config import settings  # noqa: E402
from common.log_store import LogStore  # noqa: E402
from common.logging_config import setup_service_logging  # noqa: E402
from common.progress_store import ProgressStore  # noqa: E402
from common.redis_client import RedisClient, redis_client  # noqa: E402
from common.schemas import TranslateSetTask  # noqa: E402
from common.settings_store import AISettingsStore  # noqa: E402
from common.stats import StatsCounter  # noqa: E402
from common.translation_store import RedisTranslationStore  # noqa: E402
from translator.batch_translator import BatchTranslationJob  # noqa: E402
from translator.translation_service import OpenAITranslationClient  # noqa: E402

# Configure logging
service_logger = setup_service_logging("translator", enable_file_logging=True)
logger = service_logger.logger

# Message consumption constants
QUEUE_GET_TIMEOUT = 1.0  # Seconds to wait for message from queue
QUEUE_WAIT_TIMEOUT = 1.1  # asyncio timeout (slightly longer than queue timeout)
BUSY_WAIT_SLEEP = 0.1  # Sleep duration to reduce CPU usage during empty queue


def build_job(client: RedisClient) -> BatchTranslationJob:
    """Wire a BatchTranslationJob to the Redis backed stores."""
    log_store = LogStore(client)
    return BatchTranslationJob(
        translation_store=RedisTranslationStore(client),
        api_client=OpenAITranslationClient(AISettingsStore(client)),
        progress_store=ProgressStore(client, log_store=log_store),
        log_store=log_store,
        stats=StatsCounter(client),
    )


def parse_task(message: AbstractIncomingMessage) -> TranslateSetTask:
    """
    Parse a task message body.

    Raises:
        json.JSONDecodeError: If the body is not JSON
        ValidationError: If required fields are missing
    """
    data = json.loads(message.body.decode())
    logger.info(f"📥 Received translate task: {data}")
    return TranslateSetTask.model_validate(data)


async def process_translate_message(
    message: AbstractIncomingMessage,
    job: BatchTranslationJob,
    gate: SingleFlightGate,
) -> None:
    """
    Run one translate task and release the single-flight gate afterwards.

    Malformed messages are logged and dropped.

    Args:
        message: RabbitMQ message containing a TranslateSetTask
        job: Job used to run the task
        gate: Gate holding the trigger while the task runs
    """
    try:
        task = parse_task(message)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"❌ Dropping malformed translate task: {e}")
        logger.error(f"Raw body: {message.body!r}")
        return

    try:
        result = await job.run(task.set_id, task.target_language, task.user_id)
        if not result.started:
            logger.warning(
                f"⚠️ Task {task.job_id} rejected: {result.errors[0].message}"
            )
        elif result.success:
            logger.info(f"✅ Task {task.job_id} finished, log {result.log_id}")
        else:
            logger.warning(
                f"⚠️ Task {task.job_id} finished with {len(result.errors)} errors, log {result.log_id}"
            )
    finally:
        await gate.release(task.run_key, task.job_id)


async def consume_translate_messages(stop_event: Optional[asyncio.Event] = None) -> None:
    """Consume translate tasks from RabbitMQ with automatic reconnection."""
    stop_event = stop_event or asyncio.Event()
    connection = None
    reconnect_delay = settings.rabbitmq_reconnect_initial_delay

    job = build_job(redis_client)
    gate = SingleFlightGate(redis_client)

    while not stop_event.is_set():
        try:
            logger.info("🔌 Connecting to Redis...")
            await redis_client.connect()

            logger.info("🔌 Connecting to RabbitMQ...")
            connection = await aio_pika.connect_robust(settings.rabbitmq_url)
            connection.reconnect_callbacks.add(
                lambda conn: logger.info("🔄 Translator worker reconnected to RabbitMQ")
            )

            channel = await connection.channel()
            # One run at a time
            await channel.set_qos(prefetch_count=1)

            logger.info(f"📋 Declaring queue: {settings.translation_queue_name}")
            queue = await channel.declare_queue(settings.translation_queue_name, durable=True)

            reconnect_delay = settings.rabbitmq_reconnect_initial_delay
            logger.info("🎧 Starting to consume translate tasks...")

            while not stop_event.is_set():
                try:
                    message = await asyncio.wait_for(
                        queue.get(timeout=QUEUE_GET_TIMEOUT), timeout=QUEUE_WAIT_TIMEOUT
                    )
                except (asyncio.TimeoutError, aio_pika.exceptions.QueueEmpty):
                    await asyncio.sleep(BUSY_WAIT_SLEEP)
                    continue

                if connection.is_closed:
                    raise ConnectionError("RabbitMQ connection closed")

                async with message.process():
                    await process_translate_message(message, job, gate)

        except Exception as e:
            logger.error(f"❌ Error in translator worker: {e}")
            if not stop_event.is_set():
                logger.warning(f"Attempting to reconnect in {reconnect_delay}s...")
                await asyncio.sleep(reconnect_delay)
                reconnect_delay = min(reconnect_delay * 2, settings.rabbitmq_reconnect_max_delay)
        finally:
            if connection and not connection.is_closed:
                logger.info("🔌 Closing RabbitMQ connection...")
                await connection.close()
            connection = None

    logger.info("🔌 Closing Redis connection...")
    await redis_client.disconnect()


async def main() -> None:
    """Main entry point for the translator worker."""
    logger.info("🚀 Starting GlotPress AI Translator Worker")
    logger.info(f"🤖 Default model: {settings.openai_model}")
    logger.info("=" * 60)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    await consume_translate_messages(stop_event)


if __name__ == "__main__":
    asyncio.run(main())
