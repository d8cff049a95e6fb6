"""Whose email the pending-verification screen is about.

Several paths land on that screen: a fresh registration, a login that hit
an unconfirmed email, a referral deep-link. The first writer wins until
the record goes stale, so a later path can never swap in another person's
email.
"""

import logging
from datetime import timedelta

from pydantic import ValidationError

from auth.config import AuthConfig
from auth.storage import KeyValueStore
from auth.types import PendingRegistrationIdentity, PendingSource
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)


class PendingIdentityStore:
    """Single pending-identity record under a fixed key."""

    KEY = "pending_verification_identity"

    def __init__(self, store: KeyValueStore, config: AuthConfig, clock: Clock = now_utc):
        self._store = store
        self._ttl = timedelta(minutes=config.pending_identity_ttl_minutes)
        self._clock = clock

    def current(self) -> PendingRegistrationIdentity | None:
        """The fresh record, if any. A stale or unreadable record is discarded."""
        data = self._store.get(self.KEY)
        if data is None:
            return None

        try:
            record = PendingRegistrationIdentity.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable pending identity: {e}")
            self._store.remove(self.KEY)
            return None

        if self._clock() - record.created_at >= self._ttl:
            self._store.remove(self.KEY)
            return None
        return record

    def claim(self, email: str, source: PendingSource) -> PendingRegistrationIdentity:
        """Write the record unless a fresh one exists. Returns the record in force."""
        existing = self.current()
        if existing is not None:
            if existing.email.lower() != email.lower():
                logger.info(f"Pending identity from {existing.source.value} kept over {source.value}")
            return existing

        record = PendingRegistrationIdentity(email=email, created_at=self._clock(), source=source)
        self._store.set(
            self.KEY,
            record.model_dump(mode="json"),
            expire_seconds=int(self._ttl.total_seconds()),
        )
        return record

    def clear(self) -> None:
        self._store.remove(self.KEY)
