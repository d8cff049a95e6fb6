"""Database operations for the local binding.

Two tables: identities (credentials) and users (profile). They are written
separately on registration, so a profile can be missing for an identity.
"""

from typing import Any

from psycopg2 import errors as pg_errors
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from auth.exceptions import EmailInUseError, UsernameTakenError
from auth.types import Profile
from utils.timezone import now_utc

_PROFILE_COLUMNS = "id, email, username, display_name, email_verified, metadata"


def _profile_from_row(row: dict[str, Any]) -> Profile:
    return Profile(
        id=str(row["id"]),
        email=row["email"],
        username=row["username"],
        display_name=row["display_name"],
        email_verified=row["email_verified"],
        metadata=row["metadata"] or {},
    )


class IdentityDatabase:
    """Identity and profile rows for the local binding."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # Identities

    def get_identity_by_email(self, email: str) -> dict[str, Any] | None:
        """Find identity by email (case-insensitive)."""
        return self._db.execute_single(
            """SELECT id, email, password_hash, email_confirmed_at
               FROM identities WHERE email = lower(%s)""",
            (email,),
        )

    def get_identity_by_id(self, identity_id: str) -> dict[str, Any] | None:
        return self._db.execute_single(
            """SELECT id, email, password_hash, email_confirmed_at
               FROM identities WHERE id = %s""",
            (identity_id,),
        )

    def create_identity(self, email: str, password_hash: str) -> dict[str, Any]:
        """Insert identity (email lowercased).

        Raises:
            EmailInUseError: If the email already has an identity.
        """
        try:
            rows = self._db.execute_returning(
                """INSERT INTO identities (email, password_hash, created_at)
                   VALUES (lower(%s), %s, %s)
                   RETURNING id, email, password_hash, email_confirmed_at""",
                (email, password_hash, now_utc()),
            )
        except pg_errors.UniqueViolation:
            raise EmailInUseError("Email already registered")
        return rows[0]

    def update_password_hash(self, identity_id: str, password_hash: str) -> bool:
        rows = self._db.execute_returning(
            "UPDATE identities SET password_hash = %s WHERE id = %s RETURNING id",
            (password_hash, identity_id),
        )
        return len(rows) > 0

    def confirm_email(self, identity_id: str) -> bool:
        """Mark identity and profile as verified. Returns False if identity unknown."""
        rows = self._db.execute_returning(
            """UPDATE identities SET email_confirmed_at = %s
               WHERE id = %s RETURNING id""",
            (now_utc(), identity_id),
        )
        if not rows:
            return False
        self._db.execute_returning(
            "UPDATE users SET email_verified = true WHERE id = %s RETURNING id",
            (identity_id,),
        )
        return True

    # Profiles

    def get_profile_by_id(self, user_id: str) -> Profile | None:
        row = self._db.execute_single(
            f"SELECT {_PROFILE_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
        )
        return _profile_from_row(row) if row else None

    def get_profile_by_email(self, email: str) -> Profile | None:
        row = self._db.execute_single(
            f"SELECT {_PROFILE_COLUMNS} FROM users WHERE email = lower(%s)",
            (email,),
        )
        return _profile_from_row(row) if row else None

    def find_profiles_by_username(self, username: str) -> list[Profile]:
        """All profiles with this username. More than one is a data-integrity bug."""
        rows = self._db.execute(
            f"SELECT {_PROFILE_COLUMNS} FROM users WHERE username = %s",
            (username,),
        )
        return [_profile_from_row(row) for row in rows]

    def create_profile(
        self,
        user_id: str,
        email: str,
        username: str,
        referred_by: str | None = None,
    ) -> Profile:
        """Insert profile row for an existing identity.

        Raises:
            UsernameTakenError: If the username is already used.
        """
        try:
            rows = self._db.execute_returning(
                f"""INSERT INTO users
                       (id, email, username, display_name, email_verified,
                        referred_by, metadata, created_time)
                    VALUES (%s, lower(%s), %s, %s, false, %s, %s, %s)
                    RETURNING {_PROFILE_COLUMNS}""",
                (
                    user_id,
                    email,
                    username,
                    username,
                    referred_by,
                    Json({"user_type": "broker", "referral_count": 0}),
                    now_utc(),
                ),
            )
        except pg_errors.UniqueViolation:
            raise UsernameTakenError("Username already taken")
        return _profile_from_row(rows[0])
