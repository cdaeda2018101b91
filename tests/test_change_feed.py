"""
Tests for publishing document changes to the queue.
"""

import base64
import unittest
from unittest.mock import patch

from azure.core.exceptions import ResourceExistsError

from groupledger.config import get_settings
from groupledger.models import Change, ChangeKind, DocumentPath
from groupledger.services import ChangeFeed


class TestChangeFeed(unittest.TestCase):
    """Test suite for ChangeFeed."""

    @patch("groupledger.services.change_feed.QueueClient")
    def test_publish_base64_json(self, mock_queue_client):
        client = mock_queue_client.return_value
        client.create_queue.side_effect = ResourceExistsError("exists")

        feed = ChangeFeed(get_settings())
        feed.publish(Change(DocumentPath("groups/g1"), None, {"name": "Trip"}))

        _, kwargs = mock_queue_client.call_args
        self.assertEqual(kwargs["queue_name"], "test-document-changes")
        sent = client.send_message.call_args[0][0]
        change = Change.from_message(base64.b64decode(sent).decode("utf-8"))
        self.assertEqual(change.kind, ChangeKind.CREATE)
        self.assertEqual(change.after.get("name"), "Trip")

    @patch("groupledger.services.change_feed.QueueClient")
    def test_queue_client_cached(self, mock_queue_client):
        feed = ChangeFeed(get_settings())
        change = Change(DocumentPath("groups/g1"), {"name": "a"}, None)
        feed.publish(change)
        feed.publish(change)

        mock_queue_client.assert_called_once()
        self.assertEqual(mock_queue_client.return_value.send_message.call_count, 2)


if __name__ == "__main__":
    unittest.main()
