"""Persistence for per-principal two-factor settings (user_2fa table).

Backup codes are kept as SHA-256 hashes. Consumption is a single UPDATE
guarded by membership, so two concurrent submits of the same code cannot
both succeed.
"""

from typing import Any, Protocol

from auth.types import TwoFactorMethod, TwoFactorStatus
from clients.postgres_client import PostgresClient
from utils.timezone import Clock, now_utc


class TwoFactorStore(Protocol):
    """What the orchestrator needs from 2FA persistence."""

    def get_status(self, user_id: str) -> TwoFactorStatus: ...

    def save_pending_authenticator(self, user_id: str, secret: str, backup_code_hashes: list[str]) -> None: ...

    def get_pending_secret(self, user_id: str) -> str | None: ...

    def enable_authenticator(self, user_id: str) -> bool: ...

    def enable_email(self, user_id: str, backup_code_hashes: list[str]) -> None: ...

    def disable(self, user_id: str) -> None: ...

    def consume_backup_code(self, user_id: str, code_hash: str) -> bool: ...

    def touch_last_used(self, user_id: str) -> None: ...


def _status_from_row(user_id: str, row: dict[str, Any] | None) -> TwoFactorStatus:
    if row is None:
        return TwoFactorStatus(user_id=user_id, enabled=False)
    return TwoFactorStatus(
        user_id=user_id,
        enabled=row["is_enabled"],
        method=TwoFactorMethod(row["method"]) if row["method"] else None,
        secret=row["secret_key"],
        backup_codes=list(row["backup_codes"] or []),
    )


class TwoFactorDatabase:
    """user_2fa rows, one per principal."""

    def __init__(self, postgres: PostgresClient, clock: Clock = now_utc):
        self._db = postgres
        self._clock = clock

    def get_status(self, user_id: str) -> TwoFactorStatus:
        """Current settings. A principal with no row has 2FA disabled."""
        row = self._db.execute_single(
            """SELECT is_enabled, method, secret_key, backup_codes
               FROM user_2fa WHERE user_id = %s""",
            (user_id,),
        )
        return _status_from_row(user_id, row)

    def save_pending_authenticator(self, user_id: str, secret: str, backup_code_hashes: list[str]) -> None:
        """Store a fresh secret awaiting confirmation.

        An already-enabled row keeps working with its old secret until
        enable_authenticator swaps the method over.
        """
        self._db.execute(
            """INSERT INTO user_2fa (user_id, is_enabled, pending_secret, pending_backup_codes, updated_at)
               VALUES (%s, false, %s, %s, %s)
               ON CONFLICT (user_id) DO UPDATE
               SET pending_secret = EXCLUDED.pending_secret,
                   pending_backup_codes = EXCLUDED.pending_backup_codes,
                   updated_at = EXCLUDED.updated_at""",
            (user_id, secret, backup_code_hashes, self._clock()),
        )

    def get_pending_secret(self, user_id: str) -> str | None:
        row = self._db.execute_single(
            "SELECT pending_secret FROM user_2fa WHERE user_id = %s",
            (user_id,),
        )
        return row["pending_secret"] if row else None

    def enable_authenticator(self, user_id: str) -> bool:
        """Promote the pending secret. Returns False if none was enrolled."""
        now = self._clock()
        rows = self._db.execute_returning(
            """UPDATE user_2fa
               SET is_enabled = true,
                   method = %s,
                   secret_key = pending_secret,
                   backup_codes = pending_backup_codes,
                   pending_secret = NULL,
                   pending_backup_codes = NULL,
                   enabled_at = %s,
                   updated_at = %s
               WHERE user_id = %s AND pending_secret IS NOT NULL
               RETURNING user_id""",
            (TwoFactorMethod.AUTHENTICATOR.value, now, now, user_id),
        )
        return len(rows) > 0

    def enable_email(self, user_id: str, backup_code_hashes: list[str]) -> None:
        now = self._clock()
        self._db.execute(
            """INSERT INTO user_2fa (user_id, is_enabled, method, secret_key, backup_codes, enabled_at, updated_at)
               VALUES (%s, true, %s, NULL, %s, %s, %s)
               ON CONFLICT (user_id) DO UPDATE
               SET is_enabled = true,
                   method = EXCLUDED.method,
                   secret_key = NULL,
                   backup_codes = EXCLUDED.backup_codes,
                   enabled_at = EXCLUDED.enabled_at,
                   updated_at = EXCLUDED.updated_at""",
            (user_id, TwoFactorMethod.EMAIL.value, backup_code_hashes, now, now),
        )

    def disable(self, user_id: str) -> None:
        """Turn 2FA off explicitly. Secret and codes are wiped with it."""
        self._db.execute(
            """UPDATE user_2fa
               SET is_enabled = false, method = NULL, secret_key = NULL,
                   backup_codes = '{}', pending_secret = NULL,
                   pending_backup_codes = NULL, updated_at = %s
               WHERE user_id = %s""",
            (self._clock(), user_id),
        )

    def consume_backup_code(self, user_id: str, code_hash: str) -> bool:
        """Remove one backup code. True only for the caller that removed it."""
        rows = self._db.execute_returning(
            """UPDATE user_2fa
               SET backup_codes = array_remove(backup_codes, %s), updated_at = %s
               WHERE user_id = %s AND is_enabled AND %s = ANY(backup_codes)
               RETURNING user_id""",
            (code_hash, self._clock(), user_id, code_hash),
        )
        return len(rows) > 0

    def touch_last_used(self, user_id: str) -> None:
        self._db.execute(
            "UPDATE user_2fa SET last_used_at = %s WHERE user_id = %s",
            (self._clock(), user_id),
        )
