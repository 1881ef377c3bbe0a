import json
import logging
import threading
import time

import pika

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Publishes checkout events ('order.created', 'payment.succeeded', ...) to a
    RabbitMQ topic exchange.

    The connection is opened lazily on the first publish and reopened when it
    has been lost. Request threads and the task worker share one publisher;
    the connection is only touched while holding the lock.
    """

    def __init__(self, host="rabbitmq", exchange_name="events", exchange_type="topic", retries=3, retry_delay=1.0):
        self.host = host
        self.exchange_name = exchange_name
        self.exchange_type = exchange_type
        self.retries = retries
        self.retry_delay = retry_delay
        self.connection = None
        self.channel = None
        self._lock = threading.RLock()

    def connect(self):
        """Establishes a connection to RabbitMQ, retrying a few times."""
        with self._lock:
            self._connect()

    def _connect(self):
        for attempt in range(1, self.retries + 1):
            try:
                parameters = pika.ConnectionParameters(host=self.host, heartbeat=600, blocked_connection_timeout=300)
                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()

                # Declare the exchange (durable ensures it survives restarts)
                self.channel.exchange_declare(
                    exchange=self.exchange_name,
                    exchange_type=self.exchange_type,
                    durable=True,
                )
                logger.info("Connected to RabbitMQ exchange %s on %s", self.exchange_name, self.host)
                return
            except pika.exceptions.AMQPConnectionError:
                if attempt == self.retries:
                    raise
                logger.warning("RabbitMQ not ready (attempt %d/%d), retrying", attempt, self.retries)
                time.sleep(self.retry_delay)

    def publish(self, routing_key, message):
        """
        Publishes a message to the exchange with a specific routing key.

        Args:
            routing_key (str): The topic key (e.g., 'order.created').
            message (dict): The data payload to send.
        """
        body = json.dumps(message, default=str)
        with self._lock:
            if not self.connection or self.connection.is_closed:
                self._connect()

            self.channel.basic_publish(
                exchange=self.exchange_name,
                routing_key=routing_key,
                body=body,
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type="application/json",
                ),
            )
        logger.debug("Sent event %s: %s", routing_key, message)

    def close(self):
        """Closes the connection cleanly."""
        with self._lock:
            if self.connection and not self.connection.is_closed:
                self.connection.close()
