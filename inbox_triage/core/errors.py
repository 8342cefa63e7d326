"""
Error taxonomy for the triage engine.

Every operation either returns a result or raises one of these. `code` is
the stable string reported across the API boundary (for example in bulk
operation failures); `recoverable` tells callers whether a retry can help.
"""


class TriageError(Exception):
    """Base exception for triage engine errors."""

    code = "TriageError"

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class ValidationError(TriageError):
    """Malformed input: rejected immediately, never partially applied."""

    code = "ValidationError"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, recoverable=False)
        self.field = field


class InvalidTransitionError(ValidationError):
    """Queue item cannot move from its current status to the requested one."""

    code = "InvalidTransition"

    def __init__(self, message: str, current: str, requested: str):
        super().__init__(message, field="status")
        self.current = current
        self.requested = requested


class NotFoundError(TriageError):
    """Operation on an unknown item, VIP, rule or email."""

    code = "NotFound"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found: {resource_id}", recoverable=False)
        self.resource = resource
        self.resource_id = resource_id


class UpstreamUnavailable(TriageError):
    """A collaborator (persistence, cache, summarizer) failed."""

    code = "UpstreamUnavailable"

    def __init__(self, message: str, service: str = "unknown"):
        super().__init__(message, recoverable=True)
        self.service = service


class PartialBatchFailure(TriageError):
    """Raised on request when a bulk operation had per-id failures."""

    code = "PartialBatchFailure"

    def __init__(self, message: str, failures: list[tuple[str, str]]):
        super().__init__(message, recoverable=True)
        self.failures = failures
