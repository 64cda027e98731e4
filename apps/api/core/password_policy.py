"""
Password Policy Validation and Hashing

Implements password requirements to prevent weak credentials.
Reference: OWASP A07:2021 – Identification and Authentication Failures

Default requirements:
- Minimum 8 bytes
- Maximum 72 bytes (bcrypt limit)
- At least 1 uppercase letter
- At least 1 lowercase letter
- At least 1 digit
- At least 1 special character (anything outside A-Z, a-z, 0-9)

Checks run in a fixed order and stop at the first violation.
"""
import re
import secrets
import string
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import bcrypt

from core.config import settings

BCRYPT_MAX_BYTES = 72

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SPECIAL = re.compile(r"[^a-zA-Z0-9]")

RESET_TOKEN_LENGTH = 32
_RESET_TOKEN_ALPHABET = string.ascii_letters + string.digits


class PasswordViolation(str, Enum):
    TOO_SHORT = "TOO_SHORT"
    TOO_LONG = "TOO_LONG"
    NO_UPPERCASE = "NO_UPPERCASE"
    NO_LOWERCASE = "NO_LOWERCASE"
    NO_NUMBER = "NO_NUMBER"
    NO_SPECIAL_CHAR = "NO_SPECIAL_CHAR"


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    max_length: int = BCRYPT_MAX_BYTES
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_number: bool = True
    require_special_char: bool = True


DEFAULT_POLICY = PasswordPolicy()


class PasswordPolicyError(ValueError):
    """Raised with the first policy rule a password breaks."""

    def __init__(self, violation: PasswordViolation, policy: PasswordPolicy = DEFAULT_POLICY):
        self.violation = violation
        self.policy = policy
        super().__init__(_violation_message(violation, policy))

    @property
    def error_code(self) -> str:
        return f"PASSWORD_{self.violation.value}"


def _violation_message(violation: PasswordViolation, policy: PasswordPolicy) -> str:
    if violation is PasswordViolation.TOO_SHORT:
        return f"Password must be at least {policy.min_length} characters"
    if violation is PasswordViolation.TOO_LONG:
        return f"Password must not exceed {policy.max_length} characters"
    if violation is PasswordViolation.NO_UPPERCASE:
        return "Password must contain at least one uppercase letter"
    if violation is PasswordViolation.NO_LOWERCASE:
        return "Password must contain at least one lowercase letter"
    if violation is PasswordViolation.NO_NUMBER:
        return "Password must contain at least one number"
    return "Password must contain at least one special character"


def validate_password_strength(password: str, policy: Optional[PasswordPolicy] = None) -> None:
    """
    Validate password against a policy.

    Args:
        password: The password to validate
        policy: Policy to apply (defaults to DEFAULT_POLICY)

    Raises:
        PasswordPolicyError: carrying the first violated rule
    """
    policy = policy or DEFAULT_POLICY
    size = len(password.encode("utf-8"))

    if size < policy.min_length:
        raise PasswordPolicyError(PasswordViolation.TOO_SHORT, policy)
    if size > policy.max_length:
        raise PasswordPolicyError(PasswordViolation.TOO_LONG, policy)
    if policy.require_uppercase and not _UPPER.search(password):
        raise PasswordPolicyError(PasswordViolation.NO_UPPERCASE, policy)
    if policy.require_lowercase and not _LOWER.search(password):
        raise PasswordPolicyError(PasswordViolation.NO_LOWERCASE, policy)
    if policy.require_number and not _DIGIT.search(password):
        raise PasswordPolicyError(PasswordViolation.NO_NUMBER, policy)
    if policy.require_special_char and not _SPECIAL.search(password):
        raise PasswordPolicyError(PasswordViolation.NO_SPECIAL_CHAR, policy)


def hash_password(password: str) -> str:
    """Validate against the default policy, then bcrypt-hash."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a stored bcrypt hash."""
    candidate = password.encode("utf-8")
    if len(candidate) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(candidate, password_hash.encode("utf-8"))
    except ValueError:
        # Malformed or non-bcrypt stored hash
        return False


def calculate_password_strength(password: str) -> int:
    """
    Score a password 0-100 for UX feedback (never used for acceptance).
    """
    score = 0
    # Length bands count UTF-8 bytes.
    length = len(password.encode("utf-8"))

    if length >= 16:
        score += 45
    elif length >= 12:
        score += 35
    elif length >= 8:
        score += 25

    if _LOWER.search(password):
        score += 10
    if _UPPER.search(password):
        score += 10
    if _DIGIT.search(password):
        score += 10
    if _SPECIAL.search(password):
        score += 15

    if len(set(password)) >= 8:
        score += 10

    lowered = password.lower()
    if "password" in lowered or "123456" in lowered or password == "qwerty":
        score = max(0, score - 30)

    return min(score, 100)


def generate_reset_token() -> str:
    """Random 32-character alphanumeric token."""
    return "".join(secrets.choice(_RESET_TOKEN_ALPHABET) for _ in range(RESET_TOKEN_LENGTH))


def get_password_requirements_text(policy: Optional[PasswordPolicy] = None) -> str:
    """Return human-readable password requirements."""
    policy = policy or DEFAULT_POLICY
    lines = ["Password requirements:", f"• {policy.min_length}-{policy.max_length} characters"]
    if policy.require_uppercase:
        lines.append("• At least one uppercase letter (A-Z)")
    if policy.require_lowercase:
        lines.append("• At least one lowercase letter (a-z)")
    if policy.require_number:
        lines.append("• At least one digit (0-9)")
    if policy.require_special_char:
        lines.append("• At least one special character (!@#$%^&*...)")
    return "\n".join(lines)
