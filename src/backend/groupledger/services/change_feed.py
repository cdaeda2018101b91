"""Change feed publishing document writes onto Azure Queue Storage."""

import base64
import logging

from azure.core.exceptions import ResourceExistsError
from azure.identity import DefaultAzureCredential
from azure.storage.queue import QueueClient

from ..config import Settings, get_settings
from ..models import Change
from .constants import AZURE_DEV_ACCOUNT_KEY

logger = logging.getLogger(__name__)


class ChangeFeed:  # pylint: disable=too-few-public-methods
    """
    Publishes one message per document write so that the queue-triggered
    function can run the matching rules. Messages are Base64 encoded JSON,
    the default encoding of the Azure Functions queue trigger.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._queue_service_url = settings.queue_service_url
        self._queue_name = settings.change_queue_name
        self._queue_client: QueueClient | None = None

    def _get_queue_client(self) -> QueueClient:
        """Returns a QueueClient, ensuring the queue exists. Cached per instance."""
        if self._queue_client:
            return self._queue_client

        if self._queue_service_url.startswith("http://"):
            # Azurite well-known credentials
            client = QueueClient(
                account_url=self._queue_service_url,
                queue_name=self._queue_name,
                credential=AZURE_DEV_ACCOUNT_KEY,
            )
        else:
            client = QueueClient(
                account_url=self._queue_service_url,
                queue_name=self._queue_name,
                credential=DefaultAzureCredential(),
            )

        try:
            client.create_queue()
        except ResourceExistsError:
            pass  # Queue already exists, ignore
        except Exception as e:  # pylint: disable=broad-except
            logger.warning("Could not create queue: %s", e)

        self._queue_client = client
        return client

    def publish(self, change: Change) -> None:
        """Enqueues a change event."""
        client = self._get_queue_client()

        message_bytes = change.to_message().encode("utf-8")
        message_b64 = base64.b64encode(message_bytes).decode("utf-8")

        client.send_message(message_b64)
        logger.debug("Published %r", change)
