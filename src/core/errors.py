"""
Error taxonomy for the fraud engine.

None of these escape FraudDetectionOrchestrator.detect(); they exist so that
the orchestrator can tell a malformed event, an unreachable store and a
misbehaving detector apart and record the right incident for each.
"""

from typing import Optional


class FraudEngineError(Exception):
    """Base class for every engine error."""


class ValidationError(FraudEngineError):
    """ActivityEvent is malformed (blank agent id, non-finite coordinates...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class PersistenceError(FraudEngineError):
    """Profile/history store unreachable, timed out or rejected a write."""

    def __init__(self, operation: str, message: str, timed_out: bool = False):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.timed_out = timed_out


class DetectorError(FraudEngineError):
    """A single signal detector raised while evaluating an event."""

    def __init__(self, detector: str, cause: BaseException):
        super().__init__(f"Detector '{detector}' failed: {cause}")
        self.detector = detector
        self.cause = cause
