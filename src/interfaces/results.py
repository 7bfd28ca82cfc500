"""
Tagged result objects returned by the inverter and scheduling operations.

Expected failures (missing credentials, HTTP errors, vendor "fail" payloads) are
never raised. They come back as an `ActionResult` with `error` set, so the caller
can decide whether to skip, retry later or just log the problem.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ActionResult:
    """
    Outcome of an inverter/scheduling operation or of a single vendor API call.

    Attributes:
        status (str): human readable success or no-op message.
        error (str): error message, set only for failures.
        data (Any): decoded payload of a successful API call.
        details (dict): extra diagnostic information (e.g. the underlying cause).
    """

    status: Optional[str] = None
    error: Optional[str] = None
    data: Any = None
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls, status, data=None, **details):
        """Create a success result."""
        return cls(status=status, data=data, details=details)

    @classmethod
    def failure(cls, error, **details):
        """Create an error result."""
        return cls(error=error, details=details)

    @property
    def is_error(self):
        """True if this result represents a failure."""
        return self.error is not None

    @property
    def ok(self):
        """True if this result represents a success or an intentional no-op."""
        return self.error is None

    def as_dict(self):
        """Plain dictionary view, e.g. for logging or a JSON API."""
        if self.is_error:
            result = {"error": self.error}
        else:
            result = {"status": self.status}
        for key, value in self.details.items():
            result[key] = str(value) if isinstance(value, Exception) else value
        return result
