"""Domain exception hierarchy for the Apex chat client."""

from __future__ import annotations


class ApexChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class GenerationError(ApexChatError):
    """Raised when a generation call or stream fails."""


class GenerationConnectionError(GenerationError):
    """Raised when the generation backend cannot be reached."""


class GenerationServiceError(GenerationError):
    """Raised when the generation backend rejects or fails a request."""


class VideoResultMissingError(GenerationError):
    """Raised when a video job reports completion without a downloadable result."""


class ConversationBusyError(ApexChatError):
    """Raised when a turn is already running for the same conversation."""


class ConfigValidationError(ApexChatError):
    """Raised when configuration cannot be validated safely."""


class AttachmentError(ApexChatError):
    """Raised when a local file cannot be used as an attachment."""


class NotSignedInError(ApexChatError):
    """Raised when an operation requires a signed-in user."""
