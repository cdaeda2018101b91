"""
Controllers for handling application logic.
"""

import base64
import json
import logging
from http import HTTPStatus
from typing import Any, Callable

import azure.functions as func
from groupledger import jobs, membership, services
from groupledger.errors import PreconditionFailed
from groupledger.membership import Principal
from groupledger.models import Change
from groupledger.propagation import rules

__all__ = ["controller"]

logger = logging.getLogger(__name__)


def _json_response(body: dict[str, Any], status_code: int) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(body), mimetype="application/json", status_code=status_code
    )


def _error_response(code: str, message: str, status_code: int) -> func.HttpResponse:
    return _json_response({"code": code, "message": message}, status_code)


class Controller:
    """
    Controller for handling application logic and dependency injection.

    Initialized Services:
        change_feed: Publishes document changes onto the change queue.
        store: Document store whose writes are published to change_feed.
    """

    def __init__(self) -> None:
        # Instantiate Services
        # We do this at instance level (singleton) to cache clients
        self.change_feed = services.ChangeFeed()
        self.store = services.DocumentStore(publish=self.change_feed.publish)

    def _get_principal(self, req: func.HttpRequest) -> Principal | None:
        """
        Parses the 'x-ms-client-principal' header into the caller's identity.
        Returns None if header is missing or invalid.
        """
        header = req.headers.get("x-ms-client-principal")
        if not header:
            return None

        try:
            decoded = base64.b64decode(header).decode("utf-8")
            principal = json.loads(decoded)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logging.error("Failed to parse x-ms-client-principal: %s", e)
            return None

        user_id = principal.get("userId")
        if not user_id:
            return None
        return Principal(user_id, principal.get("userDetails"))

    def _call(
        self,
        req: func.HttpRequest,
        required: tuple[str, ...],
        operation: Callable[[Principal, dict[str, Any]], str],
        result_key: str = "groupId",
    ) -> func.HttpResponse:
        """Run a callable operation and map its outcome to a response."""
        principal = self._get_principal(req)
        if principal is None:
            return _error_response(
                "failed-precondition",
                membership.UNAUTHENTICATED,
                HTTPStatus.PRECONDITION_FAILED,
            )

        try:
            body = req.get_json() if required else {}
        except ValueError:
            return _error_response(
                "invalid-argument", "Invalid JSON", HTTPStatus.BAD_REQUEST
            )

        if not isinstance(body, dict):
            return _error_response(
                "invalid-argument", "Expected a JSON object", HTTPStatus.BAD_REQUEST
            )

        missing = [field for field in required if not body.get(field)]
        if missing:
            return _error_response(
                "invalid-argument",
                f"Missing required fields: {', '.join(missing)}",
                HTTPStatus.BAD_REQUEST,
            )

        try:
            result = operation(principal, body)
        except PreconditionFailed as e:
            return _error_response(e.code, e.message, HTTPStatus.PRECONDITION_FAILED)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logging.error("Error handling %s: %s", req.url, e)
            return _error_response(
                "internal", f"Internal Error: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
            )

        return _json_response({result_key: result}, HTTPStatus.OK)

    def handle_create_group(self, req: func.HttpRequest) -> func.HttpResponse:
        """Creates a group with the caller as admin."""
        logging.info("Processing create group request.")
        return self._call(
            req,
            ("name",),
            lambda principal, body: membership.create_group(
                self.store, principal, body["name"]
            ),
        )

    def handle_join_group(self, req: func.HttpRequest) -> func.HttpResponse:
        """Adds the caller to a group."""
        logging.info("Processing join group request.")
        return self._call(
            req,
            ("groupId", "role"),
            lambda principal, body: membership.join_group(
                self.store, principal, body["groupId"], body["role"]
            ),
        )

    def handle_leave_group(self, req: func.HttpRequest) -> func.HttpResponse:
        """Removes the caller from a group."""
        logging.info("Processing leave group request.")
        return self._call(
            req,
            ("groupId",),
            lambda principal, body: membership.leave_group(
                self.store, principal, body["groupId"]
            ),
        )

    def handle_kick_member(self, req: func.HttpRequest) -> func.HttpResponse:
        """Removes a member from a group on behalf of a group admin."""
        logging.info("Processing kick member request.")
        return self._call(
            req,
            ("groupId", "memberId"),
            lambda principal, body: membership.kick_member(
                self.store, principal, body["groupId"], body["memberId"]
            ),
        )

    def handle_register_user(self, req: func.HttpRequest) -> func.HttpResponse:
        logging.info("Processing user registration.")
        return self._call(
            req,
            (),
            lambda principal, _: membership.register_user(self.store, principal),
            result_key="userId",
        )

    def handle_unregister_user(self, req: func.HttpRequest) -> func.HttpResponse:
        logging.info("Processing user removal.")
        return self._call(
            req,
            (),
            lambda principal, _: membership.unregister_user(self.store, principal),
            result_key="userId",
        )

    def process_change(self, msg: func.QueueMessage) -> None:
        """
        Queue Trigger handler. Runs the rules registered for a document change.
        """
        try:
            change = Change.from_message(msg.get_body().decode("utf-8"))
            rules.dispatch(self.store, change)

        except Exception as e:
            logging.error("Error processing change message %s: %s", msg.id, e)
            # Raising exception ensures the message goes to poison queue after retries
            raise

    def check_recurring_and_balance(self) -> None:
        """Timer handler renewing recurring expenses and balance achievements."""
        try:
            jobs.check_recurring_and_balance(self.store)
        except Exception as e:
            logging.error("Check recurring and balance job failed: %s", e)
            raise


# Singleton instance
controller = Controller()
