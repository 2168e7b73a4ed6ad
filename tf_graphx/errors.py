"""
tf_graphx/errors.py — Exception hierarchy.

Extraction never raises for a bad fragment (it is skipped and counted);
these exceptions cover the cases where a whole run has to stop.
"""


class GraphxError(Exception):
    """Base class for every error raised by tf_graphx."""


class PlanParseError(GraphxError):
    """The plan document as a whole is unusable (not JSON, not an object)."""


class TerraformError(GraphxError):
    """The terraform binary is missing or exited with a non-zero status."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class StoreError(GraphxError):
    """
    A store operation failed; the enclosing transaction has been rolled back.

    Attributes:
        retryable: True when the failure is transient (store unavailable,
                   session expired, transaction timeout) and running the
                   same sync again may succeed.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class StoreConnectionError(StoreError):
    """The store could not be reached or rejected the credentials."""
