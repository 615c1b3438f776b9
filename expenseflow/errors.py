"""Errors raised by the ledger store and the aggregation service.

Each error carries a machine-readable ``code``; the API maps them to HTTP
responses in ``expenseflow.main``.
"""


class ExpenseFlowError(Exception):
    code = "EXPENSEFLOW_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ExpenseFlowError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} not found.")
        self.entity = entity
        self.key = key


class ConflictError(ExpenseFlowError):
    code = "CONFLICT"


class InvalidOperationError(ExpenseFlowError):
    code = "INVALID_OPERATION"


class UpstreamReadFailure(ExpenseFlowError):
    code = "UPSTREAM_READ_FAILURE"


class StoreWriteFailure(ExpenseFlowError):
    code = "STORE_WRITE_FAILURE"
