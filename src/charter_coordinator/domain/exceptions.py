"""Domain exceptions for the Charter Coordinator.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""


class CharterError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "CHARTER_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class ValidationError(CharterError):
    """Malformed or out-of-range input. Surfaced verbatim to the caller."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class NotFoundError(CharterError):
    """Raised when a booking, contract, escrow or vessel ID does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code=f"{entity.upper()}_NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = entity_id


# --- Authorization Errors ---


class AuthenticationError(CharterError):
    """The caller could not be identified (missing or unknown credentials)."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOT_AUTHENTICATED")


class AuthorizationError(CharterError):
    """The actor has no standing for this entity or operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOT_AUTHORIZED")


class RoleMismatchError(CharterError):
    """The role a signer asserted does not match their relationship to the booking."""

    def __init__(self, asserted_role: str, actual_role: str) -> None:
        super().__init__(
            message=f"Role mismatch: you are the {actual_role.lower()}, not the {asserted_role.lower()}",
            code="ROLE_MISMATCH",
        )
        self.asserted_role = asserted_role
        self.actual_role = actual_role


# --- State Machine Errors ---


class StateError(CharterError):
    """The operation is not valid for the entity's current state.

    Also raised when a conditional write loses a race: the precondition
    status no longer holds by the time the row is updated.
    """

    def __init__(self, message: str, current_state: str | None = None) -> None:
        super().__init__(message=message, code="INVALID_STATE")
        self.current_state = current_state


class InvalidStateTransitionError(StateError):
    """Raised when the state machine guard rejects a transition."""

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: '{attempted_event}' not allowed from {current_state}",
            current_state=current_state,
        )
        self.code = "INVALID_STATE_TRANSITION"
        self.attempted_event = attempted_event


class ConflictError(CharterError):
    """Availability/overlap conflicts and duplicate signatures."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="CONFLICT")


class EarlyReleaseError(CharterError):
    """A non-admin tried to release escrow before the charter ended."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=(
                f"Charter period for escrow {escrow_id} has not ended. "
                "Only admins can release early."
            ),
            code="EARLY_RELEASE",
        )
        self.escrow_id = escrow_id


# --- Webhook Errors ---


class SignatureVerificationError(CharterError):
    """A webhook delivery could not be attributed to a provider or failed verification."""

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message=message, code="INVALID_SIGNATURE")


class EscrowNotYetVisibleError(CharterError):
    """A payment event refers to an escrow that does not exist (yet).

    Transient: the provider is expected to redeliver.
    """

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Escrow not yet visible: {escrow_id}",
            code="ESCROW_NOT_YET_VISIBLE",
        )
        self.escrow_id = escrow_id


# --- Collaborator Errors ---


class CollaboratorUnavailableError(CharterError):
    """A required synchronous collaborator (e.g. document store) failed."""

    def __init__(self, collaborator: str, detail: str = "") -> None:
        message = f"{collaborator} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message=message, code="COLLABORATOR_UNAVAILABLE")
        self.collaborator = collaborator
