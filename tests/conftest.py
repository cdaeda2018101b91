import os

# Set environment variables for tests immediately to support module-level imports
os.environ.setdefault("TABLE_SERVICE_URL", "http://127.0.0.1:10002")
os.environ.setdefault("QUEUE_SERVICE_URL", "http://127.0.0.1:10001")
os.environ.setdefault("CHANGE_QUEUE_NAME", "test-document-changes")
os.environ.setdefault("GROUPS_TABLE", "testgroups")
os.environ.setdefault("MEMBERS_TABLE", "testmembers")
os.environ.setdefault("EXPENSES_TABLE", "testexpenses")
os.environ.setdefault("PAYMENTS_TABLE", "testpayments")
os.environ.setdefault("USERS_TABLE", "testusers")
os.environ.setdefault("USER_EXPENSES_TABLE", "testuserexpenses")
os.environ.setdefault("USER_PAYMENTS_TABLE", "testuserpayments")
os.environ.setdefault("USER_GROUPS_TABLE", "testusergroups")
os.environ.setdefault("RECURRENCE_SCHEDULE", "0 */5 * * * *")
os.environ.setdefault("AzureWebJobsStorage", "UseDevelopmentStorage=true")
os.environ.setdefault("FUNCTIONS_WORKER_RUNTIME", "python")
