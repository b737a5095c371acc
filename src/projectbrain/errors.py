"""Exception taxonomy shared across the memory and document control layers."""

from __future__ import annotations


class ProjectBrainError(Exception):
    """Base class for all projectbrain errors."""


class ProviderUnavailable(ProjectBrainError):
    """An embedding or text-generation provider is not configured or unreachable."""


class RateLimited(ProviderUnavailable):
    """The provider rejected the request with a rate-limit signal.

    Subclasses ProviderUnavailable so callers that only degrade don't need
    to care, while retry loops can catch it specifically.
    """


class EvidenceViolation(ProjectBrainError):
    """A fact or proposed change lacks the verbatim evidence it must carry."""


class StaleChangeError(ProjectBrainError):
    """The text a change targets no longer exists in the document."""

    def __init__(self, change_id: str, message: str | None = None):
        self.change_id = change_id
        super().__init__(
            message or "Original text not found - document changed since proposal"
        )


class UnsupportedFileType(ProjectBrainError):
    """No normalizer exists for an uploaded file's extension."""
