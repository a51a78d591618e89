# src/skul_relay/models/user.py
"""SQLAlchemy models for platform users and their public profiles."""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skul_relay.db.session import Base

from ._ids import new_id

USER_TYPE_STUDENT = "student"
USER_TYPE_TUTOR = "tutor"
USER_TYPE_PARENT = "parent"


class Profile(Base):
    """Primary profile record for every authenticated user."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_type: Mapped[str] = mapped_column(String(16), nullable=False, default=USER_TYPE_STUDENT)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    tutor_profile: Mapped[TutorProfile | None] = relationship(
        "TutorProfile",
        back_populates="profile",
        cascade="all, delete-orphan",
        uselist=False,
    )


class TutorProfile(Base):
    """Tutor-specific profile data; a secondary source for the avatar."""

    __tablename__ = "tutor_profiles"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    profile_photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    profile: Mapped[Profile] = relationship("Profile", back_populates="tutor_profile")
