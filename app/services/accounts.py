"""User registration and credential checks."""

import logging
import re
import secrets
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import AppError, ErrorCode
from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    hash_password,
    verify_password,
)
from app.models import User
from app.services.config_store import ConfigStore

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

RESERVED_USERNAMES: frozenset[str] = frozenset(
    {
        "admin",
        "administrator",
        "root",
        "system",
        "moderator",
        "support",
        "api",
        "null",
        "undefined",
    }
)


@lru_cache
def _dummy_password_hash() -> str:
    """Hash checked when the user does not exist, so both failure paths cost one bcrypt verify."""
    return hash_password(secrets.token_hex(16))


class UsernameTakenError(AppError):
    status_code = 409
    code = ErrorCode.USERNAME_TAKEN

    def __init__(self) -> None:
        super().__init__("Username is already taken")


def validate_username(username: str) -> str | None:
    """Return an error message, or None if the username is acceptable."""
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        return f"Username must be {USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} characters"
    if not USERNAME_PATTERN.fullmatch(username):
        return "Username may only contain letters, digits, hyphens and underscores"
    if username.lower() in RESERVED_USERNAMES:
        return "This username is reserved"
    return None


def validate_password(password: str) -> str | None:
    if len(password) < PASSWORD_MIN_LEN:
        return f"Password must be at least {PASSWORD_MIN_LEN} characters"
    if len(password) > PASSWORD_MAX_LEN:
        return f"Password must be at most {PASSWORD_MAX_LEN} characters"
    if not re.search(r"[a-z]", password):
        return "Password must contain a lowercase letter"
    if not re.search(r"[A-Z]", password):
        return "Password must contain an uppercase letter"
    if not re.search(r"\d", password):
        return "Password must contain a digit"
    return None


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.execute(select(User).where(User.username == username)).scalar_one_or_none()


def needs_setup(db: Session) -> bool:
    """True until the first account exists."""
    return db.execute(select(User.id).limit(1)).first() is None


def register_user(db: Session, username: str, password: str) -> User:
    """Create a user with a default configuration. Raises AppError on invalid input."""
    username = username.strip()
    error = validate_username(username)
    if error:
        raise AppError("Invalid username", code=ErrorCode.VALIDATION_ERROR, details=error)
    error = validate_password(password)
    if error:
        raise AppError("Invalid password", code=ErrorCode.VALIDATION_ERROR, details=error)
    if get_user_by_username(db, username) is not None:
        raise UsernameTakenError()

    user = User(username=username, password_hash=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise UsernameTakenError() from e
    except SQLAlchemyError:
        db.rollback()
        raise

    ConfigStore(db).initialize_default(user.id)
    logger.info("Registered user", extra={"user_id": user.id})
    return user


def authenticate_user(db: Session, username: str, password: str) -> User | None:
    """Return the user for valid credentials, else None (unknown user and bad password look the same)."""
    user = get_user_by_username(db, username.strip())
    if user is None:
        verify_password(password, _dummy_password_hash())
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
