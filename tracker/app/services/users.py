"""
User accounts: password hashing, login checks and admin management.

Passwords are hashed with bcrypt through passlib. The legacy superuser
credential pair from settings is checked before the users table and never
has a row of its own.
"""

import hmac
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from passlib.context import CryptContext
from pydantic import EmailStr, TypeAdapter, ValidationError

from tracker.app.core.config import get_settings
from tracker.app.db.migrate import read_connection, transaction
from tracker.app.errors import Conflict, InvalidInput, NotFound
from tracker.app.models.identity import (
    ROLES,
    Identity,
    RequestContext,
    superuser_identity,
)
from tracker.app.models.protocol import UserCreate
from tracker.app.services.activity import append_activity
from tracker.app.services.wib import wib_timestamp

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

_email_adapter = TypeAdapter(EmailStr)

# Columns safe to hand back to callers (never the hash).
_PUBLIC_COLUMNS = "id, username, email, full_name, role, is_active, created_at, last_login, created_by"


@lru_cache(maxsize=4)
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str) -> str:
    return _pwd_context(get_settings().BCRYPT_ROUNDS).hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _pwd_context(get_settings().BCRYPT_ROUNDS).verify(password, password_hash)
    except ValueError:
        logger.warning("Unrecognised password hash format")
        return False


def _same_secret(given: str, expected: str) -> bool:
    # compare_digest only accepts ASCII str, so compare UTF-8 bytes.
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def _identity_from_row(row) -> Identity:
    return Identity(
        kind="stored",
        user_id=row["id"],
        username=row["username"],
        full_name=row["full_name"],
        role=row["role"],
    )


def get_active_identity(user_id: int) -> Optional[Identity]:
    """Re-read a stored user; None when missing or deactivated."""
    with read_connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE id = ? AND is_active = 1", (user_id,)
        ).fetchone()
    if not row or row["role"] not in ROLES:
        return None
    return _identity_from_row(row)


def authenticate(
    username: Optional[str],
    password: Optional[str],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Identity:
    """
    Check a username/password pair.

    The superuser pair wins; otherwise the password is checked against an
    active stored user, whose ``last_login`` is refreshed and a ``login``
    activity entry written.

    Raises:
        InvalidInput: missing fields or wrong credentials
    """
    settings = get_settings()
    # Non-text JSON values count as missing.
    if not isinstance(username, str):
        username = None
    if not isinstance(password, str):
        password = None

    if (
        username
        and password
        and _same_secret(username, settings.SUPERUSER_USERNAME)
        and _same_secret(password, settings.SUPERUSER_PASSWORD)
    ):
        logger.info("Superuser login")
        return superuser_identity(settings.SUPERUSER_USERNAME)

    if not username or not password:
        raise InvalidInput("Username dan password harus diisi")

    with read_connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE username = ? AND is_active = 1", (username,)
        ).fetchone()

    if not row or not verify_password(password, row["password_hash"]):
        logger.info("Failed login for %r", username)
        raise InvalidInput("Invalid username or password")

    identity = _identity_from_row(row)
    actor = RequestContext(identity=identity, ip_address=ip_address, user_agent=user_agent)
    with transaction() as conn:
        conn.execute(
            "UPDATE users SET last_login = ? WHERE id = ?", (wib_timestamp(), row["id"])
        )
        append_activity(conn, actor, "login", target_type="user", target_id=row["id"])

    logger.info("User %s logged in", identity.username)
    return identity


def create_user(data: UserCreate, actor: RequestContext) -> int:
    """
    Create a stored user.

    Raises:
        InvalidInput: missing fields, mismatched or short password, bad
            email, unknown role
        Conflict: username or email already taken
    """
    if not all([data.username, data.email, data.full_name, data.role, data.password]):
        raise InvalidInput("All fields are required")
    if data.password != data.confirm_password:
        raise InvalidInput("Passwords do not match")
    if len(data.password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    try:
        _email_adapter.validate_python(data.email)
    except ValidationError:
        raise InvalidInput("Invalid email format")
    if data.role not in ROLES:
        raise InvalidInput("Invalid role")

    password_hash = hash_password(data.password)

    with transaction(conflict_message="Username or email already exists") as conn:
        existing = conn.execute(
            "SELECT id FROM users WHERE username = ? OR email = ?",
            (data.username, data.email),
        ).fetchone()
        if existing:
            raise Conflict("Username or email already exists")

        cursor = conn.execute(
            """
            INSERT INTO users (
                username, email, password_hash, full_name, role, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (
                data.username,
                data.email,
                password_hash,
                data.full_name,
                data.role,
                actor.user_id,
                wib_timestamp(),
            ),
        )
        user_id = cursor.lastrowid
        append_activity(
            conn,
            actor,
            "create_user",
            target_type="user",
            target_id=user_id,
            details=f"Created user {data.username} ({data.role})",
        )

    logger.info("Created user %s with role %s", data.username, data.role)
    return user_id


def toggle_user_status(user_id: int, actor: RequestContext) -> Dict[str, Any]:
    if user_id == actor.user_id:
        raise InvalidInput("Cannot disable your own account")

    with transaction() as conn:
        row = conn.execute(
            "SELECT is_active, username FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        if not row:
            raise NotFound("User not found")

        new_status = 0 if row["is_active"] else 1
        state = "activated" if new_status else "deactivated"
        conn.execute("UPDATE users SET is_active = ? WHERE id = ?", (new_status, user_id))
        append_activity(
            conn,
            actor,
            "activate_user" if new_status else "deactivate_user",
            target_type="user",
            target_id=user_id,
            details=f"User {row['username']} {state}",
        )

    return {"success": True, "message": f"User {state} successfully"}


def reset_password(user_id: int, new_password: Optional[str], actor: RequestContext) -> Dict[str, Any]:
    if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    password_hash = hash_password(new_password)
    with transaction() as conn:
        cursor = conn.execute(
            "UPDATE users SET password_hash = ? WHERE id = ?", (password_hash, user_id)
        )
        if cursor.rowcount == 0:
            raise NotFound("User not found")
        append_activity(
            conn,
            actor,
            "reset_password",
            target_type="user",
            target_id=user_id,
            details=f"Password reset by admin ({actor.identity.username})",
        )

    return {"success": True, "message": "Password reset successfully"}


def list_users() -> List[Dict[str, Any]]:
    with read_connection() as conn:
        rows = conn.execute(
            f"SELECT {_PUBLIC_COLUMNS} FROM users ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [dict(row) for row in rows]


def bootstrap_admin_user() -> bool:
    """
    Seed the initial admin account if it does not exist.

    Returns:
        True when a user was created
    """
    settings = get_settings()
    with transaction() as conn:
        existing = conn.execute(
            "SELECT id FROM users WHERE username = ?", (settings.SEED_ADMIN_USERNAME,)
        ).fetchone()
        if existing:
            return False
        conn.execute(
            """
            INSERT INTO users (
                username, email, password_hash, full_name, role, is_active, created_at
            ) VALUES (?, ?, ?, ?, 'admin', 1, ?)
        """,
            (
                settings.SEED_ADMIN_USERNAME,
                settings.SEED_ADMIN_EMAIL,
                hash_password(settings.SEED_ADMIN_PASSWORD),
                "System Administrator",
                wib_timestamp(),
            ),
        )
    logger.info("Seeded admin user %s", settings.SEED_ADMIN_USERNAME)
    return True
