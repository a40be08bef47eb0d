# Overview: Accounts and roles for the point API; bcrypt passwords and role checks.

"""
Accounts and roles.

Only the admin role matters to the ledger: it unlocks manual adjustments,
reading any customer's points, and triggering expiration with a session
instead of the cron secret.

Passwords are bcrypt-hashed (cost 12) after a strength check:
8+ characters with upper, lower, digit and special characters.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, Role, UserRole, Customer
from loyalty.time_utils import utcnow


ADMIN_ROLE = "admin"

DEFAULT_ROLES = [
    (ADMIN_ROLE, "Full access, including point adjustments and expiration"),
    ("staff", "Back-office staff; no point administration"),
    ("customer", "Customer account; may read own points only"),
]

BCRYPT_ROUNDS = 12

_PASSWORD_RULES = [
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"\d"), "a digit"),
    (re.compile(r"[!@#$%^&*(),.'\":{}|<>]"), "a special character"),
]


class PasswordValidationError(Exception):
    """Password fails the strength rules."""


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    for pattern, label in _PASSWORD_RULES:
        if not pattern.search(password):
            raise PasswordValidationError(f"Password must contain at least {label}")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    customer_id: int | None = None,
) -> User:
    """
    Create an account; pass customer_id for a customer self-service login.

    Raises:
        ValueError: username/email taken, or unknown customer_id
        PasswordValidationError: weak password
    """
    taken = db.session.query(User.id).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if taken:
        raise ValueError("Username or email already exists")

    if customer_id is not None and db.session.get(Customer, customer_id) is None:
        raise ValueError("Customer not found")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        customer_id=customer_id,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """Active user matching username (or email) and password, else None."""
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()
    if user is None or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Idempotent: returns the existing link when the user already has the role."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if role is None:
        raise ValueError(f"Role {role_name} not found")

    link = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if link is None:
        link = UserRole(user_id=user_id, role_id=role.id)
        db.session.add(link)
        db.session.commit()
    return link


def get_user_role_names(user_id: int) -> set[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {name for (name,) in rows}


def is_admin(user_id: int) -> bool:
    return ADMIN_ROLE in get_user_role_names(user_id)


def create_default_roles() -> None:
    existing = {name for (name,) in db.session.query(Role.name).all()}
    for name, description in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name, description=description))
    db.session.commit()
