# Overview: Service-layer operations for accounts; password hashing, registration and login.

"""
Account Service

Customer self-registration, admin bootstrap and password login.

- Passwords are stored as bcrypt hashes (cost BCRYPT_ROUNDS, default 12)
- Usernames are unique regardless of case
- Tokens are handled by session_service
"""

import logging
import re

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import User
from ..validation import ConflictError
from bookstore.time_utils import utcnow

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")

MIN_PASSWORD_LENGTH = 8
PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"\d"), "a digit"),
    (re.compile(r"[!@#$%^&*(),.'\":{}|<>_\-+=?/\\\[\];~`]"), "a special character"),
)


class PasswordValidationError(Exception):
    """Password too weak to store."""


def validate_password_strength(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    for pattern, label in PASSWORD_RULES:
        if not pattern.search(password):
            raise PasswordValidationError(f"Password must contain at least {label}")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt (cost factor BCRYPT_ROUNDS, default 12).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12) if has_app_context() else 12
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(username: str, password: str, *, is_admin: bool = False) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: username is malformed
        ConflictError: username already taken
        PasswordValidationError: password doesn't meet requirements
    """
    username = (username or "").strip()
    if not USERNAME_PATTERN.match(username):
        raise ValueError("Username must be 3-64 characters: letters, digits, '_', '.', '-'")

    existing = db.session.query(User).filter(db.func.lower(User.username) == username.lower()).first()
    if existing:
        raise ConflictError("Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(password),
        is_admin=is_admin,
    )

    db.session.add(user)
    db.session.commit()
    logger.info("Created user id=%s username=%r is_admin=%s", user.id, user.username, user.is_admin)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        db.func.lower(User.username) == username.strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def set_admin(user_id: int, is_admin: bool) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    user.is_admin = is_admin
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()


def get_user_by_username(username: str) -> User | None:
    return db.session.query(User).filter_by(username=username).first()
