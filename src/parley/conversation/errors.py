"""Custom exceptions for the conversation engine.

Every failed operation raises exactly one of these errors, each carrying a
machine-readable code and the HTTP status a transport layer would map it to.
Validation errors are always raised before anything is appended to the
event log.
"""

from typing import Optional
from uuid import UUID


class MessagingError(Exception):
    """Base exception for all conversation-related errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code for API responses
    """

    def __init__(self, message: str, code: str, status_code: int) -> None:
        """Initialize messaging error.

        Args:
            message: Human-readable error description
            code: Machine-readable error code
            status_code: HTTP status code (400, 500, etc.)
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ConversationNotFoundError(MessagingError):
    """Raised when a conversation UUID is unknown to the engine."""

    def __init__(self, conversation_uuid: UUID) -> None:
        super().__init__(
            message=f"Conversation '{conversation_uuid}' not found",
            code="conversation_not_found",
            status_code=404,
        )
        self.conversation_uuid = conversation_uuid


class PermissionDeniedError(MessagingError):
    """Raised when the actor lacks the capability an operation requires.

    Also raised when an operation would violate the direct/uber/public
    constraints of the conversation.
    """

    def __init__(self, actor: str, operation: str, reason: Optional[str] = None) -> None:
        """Initialize permission denied error.

        Args:
            actor: User who attempted the operation
            operation: Name of the denied operation
            reason: Optional explanation appended to the message
        """
        message = f"User '{actor}' may not perform '{operation}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="permission_denied", status_code=403)
        self.actor = actor
        self.operation = operation


class InvalidParticipantError(MessagingError):
    """Raised when a target user does not exist or is not a member where required."""

    def __init__(self, user_id: str, reason: str) -> None:
        super().__init__(
            message=f"Invalid participant '{user_id}': {reason}",
            code="invalid_participant",
            status_code=400,
        )
        self.user_id = user_id


class AlreadyRemovedError(MessagingError):
    """Raised when removing a participant who has already left the conversation."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            message=f"Participant '{user_id}' is already removed",
            code="already_removed",
            status_code=409,
        )
        self.user_id = user_id


class InvalidSequenceError(MessagingError):
    """Raised for out-of-range read markers or retransmission bounds."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="invalid_sequence", status_code=400)


class RangeTooLargeError(MessagingError):
    """Raised when a retransmission request spans more events than allowed."""

    def __init__(self, requested: int, limit: int) -> None:
        super().__init__(
            message=f"Requested {requested} events, at most {limit} may be retransmitted",
            code="range_too_large",
            status_code=400,
        )
        self.requested = requested
        self.limit = limit


class RateLimitedError(MessagingError):
    """Raised when a typing notification is sent again inside the cooldown window."""

    def __init__(self, actor: str, cooldown_seconds: float) -> None:
        super().__init__(
            message=(
                f"User '{actor}' already sent a typing notification "
                f"in the last {cooldown_seconds:g} seconds"
            ),
            code="rate_limited",
            status_code=429,
        )
        self.actor = actor


class TextTooLongError(MessagingError):
    """Raised when message text exceeds the maximum allowed length."""

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(
            message=f"Message text is {length} characters long, the limit is {limit}",
            code="text_too_long",
            status_code=400,
        )
        self.length = length
        self.limit = limit


class ConversationNotPublicError(MessagingError):
    """Raised when joining a conversation that does not allow public join."""

    def __init__(self, conversation_uuid: UUID) -> None:
        super().__init__(
            message=f"Conversation '{conversation_uuid}' is not open for public join",
            code="conversation_not_public",
            status_code=403,
        )
        self.conversation_uuid = conversation_uuid


class InternalError(MessagingError):
    """Raised when storage fails in a way the engine cannot recover from.

    The sequence number reserved for the failed event is released, so the
    log never contains a gap.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="internal_error", status_code=500)


class EventLogError(Exception):
    """Raised by event log implementations when an append cannot be made durable."""


class SequenceConflictError(EventLogError):
    """Raised when an appended event does not directly follow the last stored sequence."""

    def __init__(
        self, conversation_uuid: UUID, expected: Optional[int], actual: Optional[int]
    ) -> None:
        if expected is None:
            message = f"Conversation '{conversation_uuid}' already has sequence {actual}"
        else:
            message = (
                f"Conversation '{conversation_uuid}' expected sequence {expected}, got {actual}"
            )
        super().__init__(message)
        self.conversation_uuid = conversation_uuid
        self.expected = expected
        self.actual = actual
