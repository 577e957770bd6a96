"""Domain exceptions shared by the stores, integrations and the turn orchestrator."""

from __future__ import annotations


class AnchorError(Exception):
    """Base class for all anchor-agent errors."""


class PersonaNotFoundError(AnchorError):
    """No persona could be resolved for a chat turn."""


class ProfileValidationError(AnchorError, ValueError):
    """A profile payload failed validation (missing uid, bad e-mail, unknown persona)."""


class InvalidMediaKeyError(AnchorError, ValueError):
    """A stored media reference does not have the owner/chat/file.ext shape."""


class JobBridgeError(AnchorError):
    """The external job engine refused, failed or dropped a job."""


class JobRejectedError(JobBridgeError):
    """The job was interrupted at submission because an output node failed validation."""

    def __init__(self, message: str, node_errors: dict | None = None) -> None:
        super().__init__(message)
        self.node_errors = node_errors or {}


class CrawlError(AnchorError):
    """The discovery API failed to produce a snapshot."""


class CrawlTimeoutError(CrawlError):
    """The snapshot did not complete before the polling deadline."""


class TurnFailedError(AnchorError):
    """A fatal stage of a chat turn failed."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage
