"""
Database Models for the Pet-Care Task Service.

Defines the SQLAlchemy ORM models behind the marketplace: the ``Task``
posted by an owner, the ordered ``TaskApplicant`` rows recording which
helpers asked for it, and the ``User`` and ``Pet`` records that tasks
reference.  Users and pets are owned by other parts of the marketplace;
this service only reads them for identity resolution, ownership checks and
the denormalised snapshots embedded in task responses.

Key Concepts Demonstrated:
- ``str, Enum`` inheritance for JSON-friendly enumeration values
- Optimistic concurrency via SQLAlchemy's ``version_id_col``
- Insertion-ordered, duplicate-free applicant sets via a unique join table
- Timezone-aware datetime handling (UTC normalisation)
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from . import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_iso(value: datetime | None) -> str | None:
    """
    Convert a datetime to a UTC ISO-8601 string.

    SQLite does not store timezone information, so values read back from
    the database may be naive even though they were written in UTC.  Naive
    datetimes are assumed UTC; aware ones are converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


class TaskStatus(str, Enum):
    """
    Lifecycle status of a task.

    ``CANCELLED`` is a declared terminal state with no incoming transition
    in ``lifecycle.ALLOWED_TRANSITIONS``.
    """

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskCategory(str, Enum):
    """Kinds of pet-care work an owner can post."""

    WALK = "walk"
    FEED = "feed"
    BOARDING = "boarding"
    SITTING = "sitting"
    GROOMING = "grooming"


class Role(str, Enum):
    """Marketplace roles.  A user may hold both."""

    OWNER = "owner"
    HELPER = "helper"


class User(db.Model):
    """
    Marketplace member, referenced by tasks as poster, applicant or assignee.

    Attributes:
        id: Auto-incrementing primary key; the ``user_id`` JWT claim.
        name: Display name shown in task snapshots.
        email: Unique contact address.
        avatar: Optional profile photo URL.
        roles: JSON list of role names (see ``Role``).
        created_at: Account creation timestamp (UTC).
    """

    __tablename__ = "users"

    id: int = db.Column(db.Integer, primary_key=True)
    name: str = db.Column(db.String(120), nullable=False)
    email: str = db.Column(db.String(120), unique=True, nullable=False, index=True)
    avatar: str = db.Column(db.String(500), nullable=False, default="")
    roles: list[str] = db.Column(db.JSON, nullable=False, default=lambda: [])
    created_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def role_set(self) -> frozenset[Role]:
        """Roles as a fixed set; unknown names stored in the column are ignored."""
        known = {role.value for role in Role}
        return frozenset(Role(name) for name in (self.roles or []) if name in known)

    def to_summary(self) -> dict[str, Any]:
        """Snapshot embedded in task responses: id, display name and avatar only."""
        return {"id": self.id, "name": self.name, "avatar": self.avatar}

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.name}>"


class Pet(db.Model):
    """A pet belonging to exactly one owner; the subject of a task."""

    __tablename__ = "pets"

    id: int = db.Column(db.Integer, primary_key=True)
    owner_id: int = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name: str = db.Column(db.String(120), nullable=False)
    species: str = db.Column(db.String(50), nullable=False, default="")
    photo: str = db.Column(db.String(500), nullable=False, default="")
    created_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "species": self.species,
            "photo": self.photo,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.to_summary(),
            "owner_id": self.owner_id,
            "created_at": to_utc_iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Pet {self.id}: {self.name}>"


class TaskApplicant(db.Model):
    """
    One helper's application to one task.

    The auto-incrementing ``id`` records application order; the unique
    constraint guarantees a helper appears at most once per task.
    """

    __tablename__ = "task_applicants"
    __table_args__ = (
        db.UniqueConstraint("task_id", "user_id", name="uq_task_applicants_task_user"),
    )

    id: int = db.Column(db.Integer, primary_key=True)
    task_id: int = db.Column(
        db.Integer, db.ForeignKey("tasks.id"), nullable=False, index=True
    )
    user_id: int = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    applied_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )

    task = db.relationship("Task", back_populates="applicant_links")
    user = db.relationship("User", lazy="joined")


class Task(db.Model):
    """
    A unit of pet-care work posted by an owner.

    Attributes:
        id: Auto-incrementing primary key.
        title: Short summary (max 200 characters).
        description: Optional longer text.
        category: Kind of work (see ``TaskCategory``).
        location: Free-text location.
        budget: Non-negative numeric budget.
        reward: Display string for the compensation, e.g. ``"$20"``.
        date: Scheduled date (UTC).
        time: Optional free-text time of day, e.g. ``"8-10am"``.
        due_date: Optional deadline (UTC).
        image: Optional image URL.
        posted_by: The owner who posted the task.  Never changes.
        pet_id: The subject pet, owned by ``posted_by``.  Never changes.
        assigned_to: The helper chosen from the applicants, or ``None``.
        status: Lifecycle status (see ``TaskStatus``).
        version_id: Optimistic-concurrency counter bumped on every UPDATE.
        created_at: Creation timestamp (UTC).
        updated_at: Last modification timestamp (UTC).
    """

    __tablename__ = "tasks"

    id: int = db.Column(db.Integer, primary_key=True)
    title: str = db.Column(db.String(200), nullable=False)
    description: str = db.Column(db.Text, nullable=False, default="")
    category: str = db.Column(db.String(20), nullable=False, index=True)
    location: str = db.Column(db.String(200), nullable=False)
    budget: float = db.Column(db.Float, nullable=False, default=0)
    reward: str = db.Column(db.String(50), nullable=False, default="")
    date: datetime = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    time: str = db.Column(db.String(50), nullable=False, default="")
    due_date: datetime | None = db.Column(db.DateTime(timezone=True), nullable=True)
    image: str = db.Column(db.String(500), nullable=False, default="")
    posted_by: int = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    pet_id: int = db.Column(db.Integer, db.ForeignKey("pets.id"), nullable=False)
    assigned_to: int | None = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True
    )
    status: str = db.Column(
        db.String(20),
        nullable=False,
        default=TaskStatus.OPEN.value,
        index=True,
    )
    version_id: int = db.Column(db.Integer, nullable=False)
    created_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __mapper_args__ = {"version_id_col": version_id}

    pet = db.relationship("Pet", lazy="joined")
    owner = db.relationship("User", foreign_keys=[posted_by], lazy="joined")
    assignee = db.relationship("User", foreign_keys=[assigned_to], lazy="joined")
    applicant_links = db.relationship(
        "TaskApplicant",
        back_populates="task",
        order_by="TaskApplicant.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def applicant_ids(self) -> list[int]:
        """Applicant user ids in application order."""
        return [link.user_id for link in self.applicant_links]

    def has_applicant(self, user_id: int) -> bool:
        return user_id in self.applicant_ids

    def to_dict(self) -> dict[str, Any]:
        """
        Serialise the task with snapshots of its pet, poster, assignee and
        applicants.

        Returns:
            A JSON-safe dictionary; datetimes are UTC ISO-8601 strings.
        """
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "location": self.location,
            "budget": self.budget,
            "reward": self.reward,
            "date": to_utc_iso(self.date),
            "time": self.time,
            "due_date": to_utc_iso(self.due_date),
            "image": self.image,
            "status": self.status,
            "pet": self.pet.to_summary() if self.pet else None,
            "posted_by": self.owner.to_summary() if self.owner else None,
            "assigned_to": self.assignee.to_summary() if self.assignee else None,
            "applicants": [link.user.to_summary() for link in self.applicant_links],
            "created_at": to_utc_iso(self.created_at),
            "updated_at": to_utc_iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title} ({self.status})>"
