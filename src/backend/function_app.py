"""
Azure Function App entry point for GroupLedger.
"""

import logging

import azure.functions as func
from groupledger.controller import controller

app = func.FunctionApp()


@app.route(route="groups/create", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def create_group(req: func.HttpRequest) -> func.HttpResponse:
    """Creates a group; the caller becomes its admin."""
    return controller.handle_create_group(req)


@app.route(route="groups/join", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def join_group(req: func.HttpRequest) -> func.HttpResponse:
    """Adds the caller to a group with a role."""
    return controller.handle_join_group(req)


@app.route(route="groups/leave", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def leave_group(req: func.HttpRequest) -> func.HttpResponse:
    """Removes the caller from a group."""
    return controller.handle_leave_group(req)


@app.route(route="groups/kick", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def kick_member(req: func.HttpRequest) -> func.HttpResponse:
    """Removes a member from a group; caller must be admin."""
    return controller.handle_kick_member(req)


@app.route(route="users/register", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def register_user(req: func.HttpRequest) -> func.HttpResponse:
    """Creates the caller's user record."""
    return controller.handle_register_user(req)


@app.route(
    route="users/unregister", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS
)
def unregister_user(req: func.HttpRequest) -> func.HttpResponse:
    """Deletes the caller's user record."""
    return controller.handle_unregister_user(req)


@app.queue_trigger(
    arg_name="msg", queue_name="%CHANGE_QUEUE_NAME%", connection="AzureWebJobsStorage"
)
def process_change(msg: func.QueueMessage) -> None:
    """Runs the aggregate rules for one document change."""
    controller.process_change(msg)


@app.timer_trigger(
    schedule="%RECURRENCE_SCHEDULE%", arg_name="timer", run_on_startup=False
)
def check_recurring_and_balance(timer: func.TimerRequest) -> None:
    """Renews recurring expenses and updates balance achievements."""
    if timer.past_due:
        logging.warning("Check recurring and balance job is running late.")
    controller.check_recurring_and_balance()
