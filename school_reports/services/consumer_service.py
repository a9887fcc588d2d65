# school_reports/services/consumer_service.py
import asyncio
import json
import logging
from typing import Optional, Callable, Awaitable
import aio_pika
from aio_pika import ExchangeType, IncomingMessage

from school_reports.schemas.payloads import AccessChangedPayload
from school_reports.services.report_session import SessionRegistry

logger = logging.getLogger(__name__)

class AccessEventConsumer:
    """
    Consumatore per profiles.access: il backend profili pubblica { userId }
    quando cambia accessible_schools di un docente; le sessioni attive di quel
    docente rilanciano la risoluzione dello scope.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        rabbitmq_url: str,
        *,
        exchange_name: str = "schools.profiles",
        queue_name: str = "profiles.access",
        heartbeat: int = 30,
        durable: bool = True,
        prefetch_count: int = 20,
        requeue_on_error: bool = False,
    ) -> None:
        self.registry = registry
        self.rabbitmq_url = rabbitmq_url
        self.exchange_name = exchange_name
        self.queue_name = queue_name
        self.heartbeat = heartbeat
        self.durable = durable
        self.prefetch_count = prefetch_count
        self.requeue_on_error = requeue_on_error

        # risorse AMQP
        self._conn: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None
        self._exchange: Optional[aio_pika.abc.AbstractExchange] = None
        self._queue: Optional[aio_pika.abc.AbstractQueue] = None
        self._consumer_tag: Optional[str] = None

        # lock per operazioni critiche (close/ensure)
        self._lock = asyncio.Lock()

    # -----------------------------
    # Lifecycle
    # -----------------------------
    async def connect(self, max_retries: int = 5, delay: int = 3) -> None:
        """Apre connessione e dichiara exchange con retry."""
        attempt = 0
        while True:
            try:
                logger.debug("RabbitMQ connection attempt #%s", attempt + 1)
                self._conn = await aio_pika.connect_robust(self.rabbitmq_url, heartbeat=self.heartbeat)
                self._channel = await self._conn.channel()
                await self._channel.set_qos(prefetch_count=self.prefetch_count)
                self._exchange = await self._channel.declare_exchange(
                    self.exchange_name, ExchangeType.DIRECT, durable=self.durable
                )
                logger.info("RabbitMQ connection established.")
                return
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                attempt += 1
                logger.warning("Connection failed: %s", exc)
                if attempt >= max_retries:
                    logger.error("Could not connect to RabbitMQ after %s attempts.", max_retries)
                    raise
                await asyncio.sleep(delay)

    async def _ensure_ready(self) -> None:
        async with self._lock:
            if not self._conn or self._conn.is_closed:
                await self.connect()

            if not self._channel or self._channel.is_closed:
                logger.debug("Channel closed: reopening.")
                assert self._conn is not None
                self._channel = await self._conn.channel()
                await self._channel.set_qos(prefetch_count=self.prefetch_count)

            if not self._exchange:
                assert self._channel is not None
                self._exchange = await self._channel.declare_exchange(
                    self.exchange_name, ExchangeType.DIRECT, durable=self.durable
                )

    async def close(self) -> None:
        """Chiude consumer, canale e connessione."""
        async with self._lock:
            if self._queue is not None and self._consumer_tag:
                try:
                    await self._queue.cancel(self._consumer_tag)
                except Exception:
                    logger.exception("Error cancelling consumer tag=%s", self._consumer_tag)
            self._consumer_tag = None
            self._queue = None

            try:
                if self._channel and not self._channel.is_closed:
                    await self._channel.close()
            finally:
                if self._conn and not self._conn.is_closed:
                    await self._conn.close()

            self._conn = None
            self._channel = None
            self._exchange = None

    # -----------------------------
    # Consumo
    # -----------------------------
    async def start(self) -> None:
        await self._ensure_ready()
        await self._declare_and_consume(self.queue_name, self._on_access_message)
        logger.info("AccessEventConsumer started on %s.", self.queue_name)

    async def stop(self) -> None:
        await self.close()
        logger.info("AccessEventConsumer stopped.")

    async def _declare_and_consume(
        self,
        queue_name: str,
        handler: Callable[[IncomingMessage], Awaitable[None]],
    ) -> None:
        assert self._channel is not None and self._exchange is not None

        queue = await self._channel.declare_queue(
            name=queue_name,
            durable=self.durable,
            exclusive=False,
            auto_delete=False,
        )
        await queue.bind(self._exchange, routing_key=queue_name)

        self._queue = queue
        self._consumer_tag = await queue.consume(handler, no_ack=False)
        logger.info("Queue ready: %s (consumer tag=%s)", queue_name, self._consumer_tag)

    # -----------------------------
    # profiles.access
    # -----------------------------
    async def _on_access_message(self, message: IncomingMessage) -> None:
        try:
            payload: AccessChangedPayload = json.loads(message.body.decode("utf-8"))
            user_id = payload.get("userId") if isinstance(payload, dict) else None
            if not user_id:
                raise ValueError("Missing required field: userId")

            sessions = await self.registry.rescope_user(str(user_id))

            await message.ack()
            logger.info("Access change processed", extra={"userId": user_id, "sessions": sessions})

        except json.JSONDecodeError:
            logger.exception("Invalid JSON on profiles.access")
            await message.nack(requeue=self.requeue_on_error)

        except ValueError as ve:
            logger.error("Validation error on profiles.access: message rejected (no requeue)",
                         extra={"error": str(ve)})
            await message.nack(requeue=False)

        except Exception:
            logger.exception("Error processing profiles.access")
            await message.nack(requeue=self.requeue_on_error)
