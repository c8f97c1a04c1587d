"""Exception hierarchy shared by the engine, services and API."""
import time
from typing import Any, Optional


class AutoflowError(Exception):
    """Base class for all autoflow errors."""

    def __init__(self, message: str, description: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.description = description
        self.timestamp = int(time.time() * 1000)

    def to_dict(self) -> dict:
        """Serialize the error for run data and API responses."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "description": self.description,
            "timestamp": self.timestamp,
        }


class WorkflowOperationError(AutoflowError):
    """Raised when a workflow cannot be executed or modified as requested."""


class WorkflowActivationError(AutoflowError):
    """Raised when a workflow cannot be activated."""


class ExpressionError(AutoflowError):
    """Raised when a parameter expression fails to compile or evaluate."""

    def __init__(self, message: str, expression: str = "", description: Optional[str] = None):
        super().__init__(message, description)
        self.expression = expression

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["expression"] = self.expression
        return data


class NodeOperationError(AutoflowError):
    """Raised by a node when it fails to process its input."""

    def __init__(
        self,
        node_name: str,
        message: str,
        item_index: Optional[int] = None,
        description: Optional[str] = None,
    ):
        super().__init__(message, description)
        self.node_name = node_name
        self.item_index = item_index

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["node"] = self.node_name
        if self.item_index is not None:
            data["item_index"] = self.item_index
        return data


class NodeApiError(NodeOperationError):
    """Raised when a node's call to an external API fails."""

    def __init__(
        self,
        node_name: str,
        message: str,
        http_code: Optional[int] = None,
        response_body: Any = None,
        item_index: Optional[int] = None,
        description: Optional[str] = None,
    ):
        super().__init__(node_name, message, item_index=item_index, description=description)
        self.http_code = http_code
        self.response_body = response_body

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["http_code"] = self.http_code
        return data


class ExecutionCancelledError(AutoflowError):
    """Raised when a running execution is stopped."""

    def __init__(self, execution_id: str, message: str = "The execution was cancelled"):
        super().__init__(message)
        self.execution_id = execution_id


class TimeoutExecutionCancelledError(ExecutionCancelledError):
    """Raised when an execution exceeds its timeout."""

    def __init__(self, execution_id: str):
        super().__init__(execution_id, "The execution was cancelled because it timed out")


# =============================================================================
# RESPONSE ERRORS (mapped to HTTP status codes by the API layer)
# =============================================================================


class ResponseError(AutoflowError):
    """Error that carries the HTTP status the API should answer with."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(ResponseError):
    status_code = 400


class UnauthorizedError(ResponseError):
    status_code = 401


class NotFoundError(ResponseError):
    status_code = 404


class ConflictError(ResponseError):
    status_code = 409


def error_to_dict(error: BaseException) -> dict:
    """Serialize any exception into the run data error shape."""
    if isinstance(error, AutoflowError):
        return error.to_dict()
    return {
        "name": type(error).__name__,
        "message": str(error) or type(error).__name__,
        "description": None,
        "timestamp": int(time.time() * 1000),
    }
