"""Exception hierarchy for the dagens pipeline."""

from __future__ import annotations

from typing import Optional


class DagensPipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(DagensPipelineError):
    """A prerequisite (slug, website URL, knowledge base ID) is missing."""


class SyncError(DagensPipelineError):
    """A synchronization step against an external collaborator failed."""


class ContentResolutionError(SyncError):
    """The dagens content for a restaurant could not be resolved."""

    def __init__(self, slug: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.slug = slug
        self.status = status


class KnowledgeBasePushError(SyncError):
    """The knowledge base rejected a document or could not be reached."""

    def __init__(self, knowledge_base_id: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.knowledge_base_id = knowledge_base_id
        self.status = status


class StaleSyncStateError(DagensPipelineError):
    """The stored fingerprint changed between reading and writing sync state."""
