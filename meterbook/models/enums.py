"""Enum definitions for the reading lifecycle."""

from enum import Enum


class ReadingStatus(str, Enum):
    """Lifecycle state of a reading."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReadingEventKind(str, Enum):
    """Committed transitions published to subscribers."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REOPENED = "reopened"


class PricingSource(str, Enum):
    """Where the unit factor and minimum charge of a billing entry came from."""

    SNAPSHOT = "snapshot"  # Frozen on the reading at approval
    DEFAULT = "default"  # Legacy record, configured defaults
