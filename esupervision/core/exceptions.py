"""
Error taxonomy.

Only BadArgument, InvalidStateTransition and InvalidOffenderSetupState are
surfaced to callers of the workflow services. The remaining errors are
raised and handled inside the identity verification and audit layers.
"""


class ESupervisionError(Exception):
    """Base class for all service errors."""


class BadArgument(ESupervisionError, ValueError):
    """Missing or invalid input, including unknown identifiers."""


class InvalidStateTransition(ESupervisionError):
    """A status change not permitted by the transition table."""

    def __init__(self, current, target, entity: str = "offender"):
        self.current = current
        self.target = target
        self.entity = entity
        super().__init__(
            f"Invalid {entity} status transition from {_name(current)} to {_name(target)}"
        )


class InvalidOffenderSetupState(ESupervisionError):
    """Setup cannot be completed in its current state."""

    def __init__(self, message: str, setup_uuid: str = None):
        self.setup_uuid = setup_uuid
        super().__init__(message)


class NoFaceDetected(ESupervisionError):
    """The comparison service could not locate a face in an image."""


class ComparisonServiceError(ESupervisionError):
    """Face comparison failed for a reason other than a missing face."""

    def __init__(self, message: str, transient: bool = False):
        self.transient = transient
        super().__init__(message)


class CircuitOpenError(ESupervisionError):
    """Call rejected because the circuit breaker is open."""

    def __init__(self, breaker_name: str):
        self.breaker_name = breaker_name
        super().__init__(f"Circuit breaker '{breaker_name}' is open")


class CallTimedOut(ESupervisionError):
    """Attempt skipped because the caller's deadline has passed."""


class ImmutableAuditError(ESupervisionError):
    """Attempt to update or delete a written audit row."""


def _name(state) -> str:
    return getattr(state, "value", state)
