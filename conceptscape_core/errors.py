"""
Conceptscape - Error Taxonomy

Every failure the pipeline can produce is a subclass of
``ConceptscapeError`` carrying a stable ``code``. Recoverable kinds are
absorbed by the orchestrator and turned into fallback actions; only
capture failures and exhausted fallbacks reach the caller.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ConceptscapeError(Exception):
    """Base exception for all pipeline operations."""

    code = "conceptscape-error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Voice capture
# =============================================================================


class CapturePermissionDenied(ConceptscapeError):
    """Audio device unavailable or permission refused. Fatal to the session."""

    code = "capture-permission-denied"


class TranscriptionChannelError(ConceptscapeError):
    """Streaming transcription channel reported an error. Non-fatal."""

    code = "transcription-channel-error"


# =============================================================================
# Generation
# =============================================================================


class ContentGenerationError(ConceptscapeError):
    """Educational content could not be generated or parsed."""

    code = "content-generation-error"


class ImageGenerationError(ConceptscapeError):
    """No image could be produced for the concept."""

    code = "image-generation-error"


class NarrationError(ConceptscapeError):
    """Narration audio synthesis failed."""

    code = "narration-error"


# =============================================================================
# Conversion
# =============================================================================


class ConversionFailureKind(str, Enum):
    """Distinct terminal failure causes of a conversion job."""

    PROVIDER_ERROR = "provider-error"
    TRANSPORT_ERROR = "transport-error"
    TIMEOUT = "timeout"
    INVALID_INPUT = "invalid-input"


class ConversionError(ConceptscapeError):
    """A conversion job ended without a usable asset."""

    def __init__(
        self,
        message: str,
        kind: ConversionFailureKind,
        stage: Optional[str] = None,
        job_id: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=ConversionFailureKind(kind).value, details=details)
        self.kind = ConversionFailureKind(kind)
        self.stage = stage
        self.job_id = job_id
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """Transport failures and upstream 5xx/429 responses may clear on retry."""
        if self.kind == ConversionFailureKind.TRANSPORT_ERROR:
            return True
        return self.status_code is not None and (
            self.status_code >= 500 or self.status_code == 429
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["stage"] = self.stage
        data["jobId"] = self.job_id
        return data


# =============================================================================
# Orchestration
# =============================================================================


class NoAssetAvailable(ConceptscapeError):
    """Every asset fallback (catalog match, demo asset) was exhausted."""

    code = "no-asset-available"


class RunCancelled(ConceptscapeError):
    """The orchestration run was superseded or cancelled by the caller."""

    code = "run-cancelled"
