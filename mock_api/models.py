"""
Database models for the stand-in Crocodiles API.

Key Concepts Demonstrated:
- SQLAlchemy declarative models with explicit table constraints
- Werkzeug password hashing
- Serialisation helpers shaped like the public API's responses
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from . import db


class Sex(str, Enum):
    """Values accepted for a crocodile's ``sex`` field."""

    MALE = "M"
    FEMALE = "F"


class User(db.Model):
    """
    Account that can log in and own private crocodiles.

    Attributes:
        id: Auto-incrementing integer primary key.
        username: Unique login name, indexed for login lookups.
        first_name: Optional display name.
        last_name: Optional display name.
        email: Optional contact address.
        password_hash: Werkzeug-generated hash of the password.
        created_at: Timestamp of account creation, stored as UTC.
    """

    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("length(username) <= 150", name="ck_users_username_len"),
    )

    id: int = db.Column(db.Integer, primary_key=True)
    username: str = db.Column(db.String(150), unique=True, nullable=False, index=True)
    first_name: str = db.Column(db.String(150), nullable=False, default="")
    last_name: str = db.Column(db.String(150), nullable=False, default="")
    email: str = db.Column(db.String(254), nullable=False, default="")
    password_hash: str = db.Column(db.String(256), nullable=False)
    created_at: datetime = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    crocodiles = db.relationship(
        "Crocodile", back_populates="owner", cascade="all, delete-orphan"
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(
            password, method=current_app.config.get("PASSWORD_HASH_METHOD", "scrypt")
        )

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict[str, Any]:
        """User-safe representation (no password hash)."""
        return {
            "id": self.id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.username}>"


class Crocodile(db.Model):
    """
    A crocodile, either public (``owner_id`` is ``NULL``) or owned by a user.

    Attributes:
        id: Auto-incrementing primary key.
        owner_id: Owning user; ``None`` for the public catalogue.
        name: Display name (max 100 characters).
        sex: ``"M"`` or ``"F"``.
        date_of_birth: Date of birth, never in the future.
    """

    __tablename__ = "crocodiles"
    __table_args__ = (
        db.CheckConstraint("length(name) <= 100", name="ck_crocodiles_name_len"),
        db.CheckConstraint("sex IN ('M', 'F')", name="ck_crocodiles_sex"),
    )

    id: int = db.Column(db.Integer, primary_key=True)
    owner_id: int | None = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True, index=True
    )
    name: str = db.Column(db.String(100), nullable=False)
    sex: str = db.Column(db.String(1), nullable=False)
    date_of_birth: date = db.Column(db.Date, nullable=False)

    owner = db.relationship("User", back_populates="crocodiles")

    @property
    def age(self) -> int:
        """Age in whole years as of today."""
        today = date.today()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sex": self.sex,
            "date_of_birth": self.date_of_birth.isoformat(),
            "age": self.age,
        }

    def __repr__(self) -> str:
        return f"<Crocodile {self.id}: {self.name}>"
