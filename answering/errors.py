"""Structured failures raised by the answering stages.

Lower components raise these and never choose user-facing wording. The
orchestrator and the service facade are the only places that turn them into
a fallback answer.
"""

from __future__ import annotations

from typing import Optional


class AnsweringError(Exception):
    """Base class for every failure raised by the pipeline."""


class StageTimeoutError(AnsweringError):
    """A stage exceeded its timeout budget."""

    def __init__(self, stage: str, seconds: float):
        self.stage = stage
        self.seconds = seconds
        super().__init__(f"{stage} timed out after {seconds}s")


class UpstreamError(AnsweringError):
    """The generative provider failed and retrying did not help."""

    def __init__(self, message: str, status_code: Optional[int] = None, transient: bool = False):
        self.status_code = status_code
        self.transient = transient
        super().__init__(message)


class MalformedResponseError(AnsweringError):
    """The provider answered but nothing usable could be extracted."""


class MissingDependencyError(AnsweringError):
    """A collaborator could not supply the conversation or its owner."""


class StoreProvisioningError(AnsweringError):
    """A knowledge store could not be created or adopted."""


class DocumentImportError(AnsweringError):
    """Uploading or importing a document into a store failed."""


class ProviderNotConfiguredError(AnsweringError):
    """No credentials were supplied for the generative provider."""
