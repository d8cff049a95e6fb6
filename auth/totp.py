"""Authenticator-app codes (RFC 6238, 30-second step) and backup codes."""

import hashlib
import secrets
from datetime import datetime

import pyotp


def generate_secret() -> str:
    """New base32 secret for authenticator enrollment."""
    return pyotp.random_base32()


def provisioning_uri(secret: str, account_name: str, issuer: str) -> str:
    """otpauth:// URI rendered as a QR code by the enrollment screen."""
    return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=issuer)


def verify_totp(secret: str, code: str, at: datetime, valid_window: int = 1) -> bool:
    """Check a 6-digit code at the given instant, allowing valid_window steps of drift."""
    code = code.strip().replace(" ", "")
    if len(code) != 6 or not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, for_time=at, valid_window=valid_window)


def generate_backup_codes(count: int) -> list[str]:
    """Single-use fallback codes, 8 uppercase hex characters each."""
    return [secrets.token_hex(4).upper() for _ in range(count)]


def normalize_backup_code(code: str) -> str:
    return code.strip().replace("-", "").replace(" ", "").upper()


def hash_backup_code(code: str) -> str:
    """Backup codes are stored as SHA-256 of their normalized form."""
    return hashlib.sha256(normalize_backup_code(code).encode()).hexdigest()
