"""
Username rules.
"""

from __future__ import annotations

from bumpin.errors import UsernameErrorKind, UsernameValidationError
from shared.constants import (
    RESERVED_USERNAMES,
    USERNAME_ALLOWED_CHARACTERS,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
)

_SPECIAL_CHARACTERS = "._"
_CONSECUTIVE_SPECIALS = ("..", "__", "._", "_.")

MESSAGES = {
    UsernameErrorKind.TOO_SHORT: f"Username must be at least {USERNAME_MIN_LENGTH} characters long",
    UsernameErrorKind.TOO_LONG: f"Username cannot exceed {USERNAME_MAX_LENGTH} characters",
    UsernameErrorKind.INVALID_CHARACTERS: "Username can only contain letters, numbers, dots, and underscores",
    UsernameErrorKind.INVALID_START_OR_END: "Username cannot start or end with dots or underscores",
    UsernameErrorKind.CONSECUTIVE_SPECIAL_CHARACTERS: "Username cannot contain consecutive dots or underscores",
    UsernameErrorKind.RESERVED: "This username is reserved",
    UsernameErrorKind.ALREADY_TAKEN: "This username is already taken",
}


def username_error(kind: UsernameErrorKind) -> UsernameValidationError:
    return UsernameValidationError(kind, MESSAGES[kind])


def validate_username_format(username: str) -> str:
    """
    Checks ``username`` against the format rules and returns its normalized form.

    Rules are applied to the lowercased input, in order, and the first failure
    is raised.
    """
    name = username.lower()
    if len(name) < USERNAME_MIN_LENGTH:
        raise username_error(UsernameErrorKind.TOO_SHORT)
    if len(name) > USERNAME_MAX_LENGTH:
        raise username_error(UsernameErrorKind.TOO_LONG)
    if not set(name) <= USERNAME_ALLOWED_CHARACTERS:
        raise username_error(UsernameErrorKind.INVALID_CHARACTERS)
    if name[0] in _SPECIAL_CHARACTERS or name[-1] in _SPECIAL_CHARACTERS:
        raise username_error(UsernameErrorKind.INVALID_START_OR_END)
    if any(pair in name for pair in _CONSECUTIVE_SPECIALS):
        raise username_error(UsernameErrorKind.CONSECUTIVE_SPECIAL_CHARACTERS)
    if name in RESERVED_USERNAMES:
        raise username_error(UsernameErrorKind.RESERVED)
    return name
