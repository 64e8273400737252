from datetime import datetime
from typing import Protocol

TERMS_VERSION = "2026-01-05"
PRIVACY_VERSION = "2025-12-30"
COLLECTION_VERSION = "2025-12-30"


class ConsentLike(Protocol):
    terms_version: str | None
    privacy_version: str | None
    collection_version: str | None
    accepted_at: datetime | None


def is_consent_accepted(consent: ConsentLike | None) -> bool:
    """A consent only counts when it was accepted and matches every current document version."""
    if consent is None or consent.accepted_at is None:
        return False
    return (
        consent.terms_version == TERMS_VERSION
        and consent.privacy_version == PRIVACY_VERSION
        and consent.collection_version == COLLECTION_VERSION
    )
