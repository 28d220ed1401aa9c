"""
Session-based authentication helpers.

Passwords are hashed with bcrypt (cost 12) through flask-bcrypt. Logged-in
users are tracked in the signed Flask session cookie.
"""

import functools
from typing import Optional

from flask import current_app, jsonify, session
from flask_bcrypt import Bcrypt

from .state import GLOBAL_OWNER

BCRYPT_ROUNDS = 12

bcrypt = Bcrypt()


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    return bcrypt.generate_password_hash(password, rounds).decode("utf-8")


def check_password(password_hash: Optional[str], password: str) -> bool:
    if not password_hash or not password:
        return False
    try:
        return bcrypt.check_password_hash(password_hash, password)
    except ValueError:
        # Malformed stored hash
        return False


def auth_required() -> bool:
    return bool(current_app.config.get("REQUIRE_AUTH", True))


def current_user_id() -> Optional[str]:
    return session.get("user_id")


def current_owner() -> str:
    """Key under which the caller's OpenAI services are stored."""
    if not auth_required():
        return GLOBAL_OWNER
    return current_user_id() or GLOBAL_OWNER


def login_user(user_id: str, email: str) -> None:
    session.clear()
    session["user_id"] = user_id
    session["email"] = email


def logout_user() -> None:
    session.clear()


def login_required(view):
    """Reject requests without a logged-in user when authentication is enabled."""

    @functools.wraps(view)
    def wrapped(*args, **kwargs):
        if auth_required() and not current_user_id():
            return jsonify({"success": False, "error": "Authentication required"}), 401
        return view(*args, **kwargs)

    return wrapped
