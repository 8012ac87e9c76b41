# -*- coding: utf-8 -*-
"""
@file auth.py
@brief User registration and login.

Passwords are hashed with bcrypt (salted, one way). There are no sessions
or tokens: a successful login just returns the user's id and email.
"""
import logging
import re

import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .handlers import InvalidInput
from .models import UserAccount

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72

EMAIL_PATTERN = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
)


def hash_password(password: str) -> str:
    """Hash the provided password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(stored_password: str, provided_password: str) -> bool:
    """Validate a plaintext password against the stored hash."""
    try:
        return bcrypt.checkpw(provided_password.encode("utf-8"), stored_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def _validate_credentials(email: str, password: str) -> str:
    email = (email or "").strip()
    if not email or not password:
        raise InvalidInput("Email and password are required")
    if not EMAIL_PATTERN.match(email):
        raise InvalidInput("Invalid email format")
    return email


def register_user(db: Session, email: str, password: str) -> UserAccount:
    """
    Create a new account.

    Raises:
        InvalidInput: missing fields, bad email, short password or the email
            is already registered
    """
    email = _validate_credentials(email, password)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidInput(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")

    if db.query(UserAccount).filter(UserAccount.user_email == email).first() is not None:
        raise InvalidInput("Email already exists")

    user = UserAccount(user_email=email, user_password=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race against a concurrent registration of the same email
        db.rollback()
        raise InvalidInput("Email already exists")
    db.refresh(user)

    logger.info("Registered user %s (id=%s)", user.user_email, user.user_id)
    return user


def login_user(db: Session, email: str, password: str) -> UserAccount:
    """
    Check credentials and return the matching account.

    Raises:
        InvalidInput: missing fields, bad email format, unknown email or wrong
            password (the last two share one message)
    """
    email = _validate_credentials(email, password)
    user = db.query(UserAccount).filter(UserAccount.user_email == email).first()
    if user is None or not check_password(user.user_password, password):
        logger.info("Failed login for %s", email)
        raise InvalidInput("Invalid email or password")
    return user
