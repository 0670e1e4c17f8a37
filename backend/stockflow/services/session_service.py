# Overview: Session boundary; turns a bearer token into the ActorScope passed to the services.

"""
Session boundary.

Authentication proper (passwords, login throttling, idle timeouts) lives
outside this application. What is kept here is the minimum needed to turn a
bearer token into an ActorScope:

- Users with a role and a set of store assignments
- Random tokens (32 bytes), stored only as SHA-256 hashes
- 24-hour absolute expiry, revocable

The ActorScope is built once per request and handed to every service call
explicitly; services never read the session themselves.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, Store, User, UserStoreAccess
from stockflow.time_utils import utcnow
from .scope_service import ActorScope, Role

SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy; a fast hash is sufficient.
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_user(*, username: str, role: str = "seller", name: str | None = None) -> User:
    if not username or not username.strip():
        raise ValueError("username is required")
    role = Role.parse(role).value

    if db.session.query(User.id).filter_by(username=username.strip()).first():
        raise ValueError("username already exists")

    user = User(username=username.strip(), name=name, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user


def grant_store(*, user_id: int, store_id: int) -> UserStoreAccess:
    """Assign a store to a user; idempotent."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise ValueError("Store not found")

    existing = db.session.query(UserStoreAccess).filter_by(user_id=user_id, store_id=store_id).first()
    if existing:
        return existing

    access = UserStoreAccess(user_id=user_id, store_id=store_id)
    db.session.add(access)
    db.session.commit()
    return access


def issue_token(user_id: int) -> str:
    """
    Create a session for user_id and return the plaintext token.

    Only the hash is stored; the plaintext cannot be recovered later.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    plaintext = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext),
        created_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return plaintext


def validate_session(token: str) -> User | None:
    """
    Return the user behind a token, or None when the token is unknown,
    revoked, expired or belongs to a deactivated user.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    if session.expires_at < utcnow():
        return None

    user = session.user
    if not user or not user.is_active:
        session.is_revoked = True
        db.session.commit()
        return None

    return user


def revoke_token(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    db.session.commit()
    return True


def assigned_store_ids(user_id: int) -> frozenset[int]:
    rows = db.session.query(UserStoreAccess.store_id).filter_by(user_id=user_id).all()
    return frozenset(row[0] for row in rows)


def load_actor_scope(user: User) -> ActorScope:
    return ActorScope(
        actor_id=user.id,
        role=Role.parse(user.role),
        assigned_store_ids=assigned_store_ids(user.id),
    )
