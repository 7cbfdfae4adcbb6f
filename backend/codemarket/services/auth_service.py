# Overview: Service-layer operations for accounts; registration, login and role changes.

"""
Account Service

Passwords are hashed with bcrypt. Hashes migrated from the old PHP
storefront carry the "$2y$" prefix; they are the same algorithm and are
checked as "$2a$".
"""

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, Unauthorized, ValidationFailed
from ..extensions import db
from ..models import User, ROLE_USER, VALID_ROLES
from codemarket.time_utils import utcnow
from .access_service import Identity, require_admin, require_authenticated

MIN_PASSWORD_LENGTH = 6


def normalize_email(email) -> str:
    return str(email or "").strip().lower()


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def _normalize_bcrypt_hash(password_hash: str) -> str:
    if password_hash.startswith("$2y$"):
        return "$2a$" + password_hash[4:]
    return password_hash


def verify_password(password: str, password_hash: str) -> bool:
    if not isinstance(password_hash, str) or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            _normalize_bcrypt_hash(password_hash).encode("utf-8"),
        )
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(name: str, email: str, password: str, role: str = ROLE_USER) -> User:
    """
    Insert a user. Used by self-registration and by the CLI.

    Raises ValidationFailed on blank fields, short password, unknown role
    or duplicate email.
    """
    name = str(name or "").strip()
    email = normalize_email(email)
    if not name or not email or not password:
        raise ValidationFailed("All fields are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if role not in VALID_ROLES:
        raise ValidationFailed(f"Role must be one of: {', '.join(VALID_ROLES)}")

    if db.session.query(User.id).filter_by(email=email).first():
        raise ValidationFailed("Email already registered")

    user = User(name=name, email=email, password_hash=hash_password(password), role=role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email
        db.session.rollback()
        raise ValidationFailed("Email already registered")
    return user


def register(name, email, password, password_confirm) -> User:
    """Self-registration; always creates a plain user."""
    if not name or not normalize_email(email) or not password or not password_confirm:
        raise ValidationFailed("All fields are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != password_confirm:
        raise ValidationFailed("Passwords do not match")
    return create_user(name=name, email=email, password=password, role=ROLE_USER)


def authenticate(email, password) -> User:
    """
    Check credentials and stamp last_login_at.

    Raises Unauthorized for unknown email, wrong password or a disabled
    account. The first two share one message.
    """
    email = normalize_email(email)
    if not email or not password:
        raise ValidationFailed("Email and password required")

    user = db.session.query(User).filter_by(email=email).first()
    if not user:
        raise Unauthorized("Invalid email or password")
    if not user.is_active:
        raise Unauthorized("Account is disabled")
    if not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid email or password")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def update_profile(identity: Identity | None, name) -> User:
    identity = require_authenticated(identity)
    name = str(name or "").strip()
    if not name:
        raise ValidationFailed("Name required")
    user = get_user(identity.user_id)
    user.name = name
    db.session.commit()
    return user


def set_role(identity: Identity | None, email, role: str) -> User:
    """Promote or demote a user by email. Admin only."""
    require_admin(identity)
    return change_role(email, role)


def change_role(email, role: str) -> User:
    """
    Role change without a caller check, for trusted entry points (the CLI).
    HTTP routes go through set_role.
    """
    email = normalize_email(email)
    if not email:
        raise ValidationFailed("Email required")
    if role not in VALID_ROLES:
        raise ValidationFailed(f"Role must be one of: {', '.join(VALID_ROLES)}")

    user = db.session.query(User).filter_by(email=email).first()
    if not user:
        raise NotFound("User not found")
    user.role = role
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()
