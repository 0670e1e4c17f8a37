from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class User(db.Model):
    """
    Actor known to the session collaborator.

    role is one of admin / manager / seller; store assignments live in
    UserStoreAccess. Only read here to build an ActorScope per request.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="seller")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "store_ids": sorted(access.store_id for access in self.store_access),
            "created_at": to_utc_z(self.created_at),
        }


class UserStoreAccess(db.Model):
    """Store assignment of a user (one row per user/store pair)."""
    __tablename__ = "user_store_access"
    __table_args__ = (
        db.UniqueConstraint("user_id", "store_id", name="uq_user_store_access_user_store"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("store_access", lazy=True))
    store = db.relationship("Store")


class SessionToken(db.Model):
    """
    Bearer token issued to a user.

    Tokens stored hashed (SHA-256); plaintext only ever leaves through
    session_service.issue_token.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))
