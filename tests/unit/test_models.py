"""
Unit tests for the SQLAlchemy models.

Validates column defaults, the enriched ``to_dict()`` projection, role
parsing and the database-level guarantees (unique applicants, versioned
updates) without touching HTTP endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from petcare_app.models import Task, TaskApplicant, TaskStatus, to_utc_iso

pytestmark = pytest.mark.unit


def test_task_defaults(db_session, owner, owner_pet):
    """Test that a task created with only required columns gets the right defaults."""
    # Arrange
    task = Task(title="Walk", category="walk", location="Park", posted_by=owner.id, pet_id=owner_pet.id)

    # Act
    db_session.session.add(task)
    db_session.session.commit()

    # Assert
    assert task.status == TaskStatus.OPEN.value
    assert task.assigned_to is None
    assert task.applicant_ids == []
    assert task.version_id == 1
    assert task.created_at is not None


def test_to_dict_embeds_snapshots(db_session, owner, helper, owner_pet, task_factory):
    """Test that pet, poster, assignee and applicants are projected as snapshots."""
    # Arrange
    task = task_factory(
        owner,
        pet=owner_pet,
        status=TaskStatus.IN_PROGRESS.value,
        applicants=[helper],
        assigned_to=helper,
    )

    # Act
    data = task.to_dict()

    # Assert
    assert data["pet"] == {
        "id": owner_pet.id,
        "name": owner_pet.name,
        "species": owner_pet.species,
        "photo": owner_pet.photo,
    }
    assert data["posted_by"] == {"id": owner.id, "name": owner.name, "avatar": owner.avatar}
    assert data["assigned_to"] == {"id": helper.id, "name": helper.name, "avatar": helper.avatar}
    assert data["applicants"] == [{"id": helper.id, "name": helper.name, "avatar": helper.avatar}]
    assert "email" not in data["posted_by"]


def test_to_dict_for_open_task_has_no_assignee(db_session, owner, task_factory):
    """Test that an unassigned task projects assigned_to as None."""
    # Arrange
    task = task_factory(owner)

    # Act
    data = task.to_dict()

    # Assert
    assert data["assigned_to"] is None
    assert data["applicants"] == []


def test_duplicate_applicant_row_is_rejected_by_database(db_session, owner, helper, task_factory):
    """Test that the unique constraint backs up the no-duplicate-applicants rule."""
    # Arrange
    task = task_factory(owner, applicants=[helper])

    # Act
    db_session.session.add(TaskApplicant(task_id=task.id, user_id=helper.id))

    # Assert
    with pytest.raises(IntegrityError):
        db_session.session.commit()
    db_session.session.rollback()


def test_stale_version_update_is_rejected(db_session, owner, task_factory):
    """Test that an UPDATE based on an outdated version fails."""
    # Arrange
    task = task_factory(owner)
    assert task.version_id == 1
    db_session.session.execute(
        Task.__table__.update().where(Task.__table__.c.id == task.id).values(version_id=5)
    )

    # Act
    task.title = "Changed underneath"

    # Assert
    with pytest.raises(StaleDataError):
        db_session.session.commit()
    db_session.session.rollback()


def test_to_utc_iso_treats_naive_as_utc():
    """Test that naive datetimes read back from SQLite are labelled UTC."""
    # Arrange
    naive = datetime(2025, 1, 1, 12, 0)

    # Act
    result = to_utc_iso(naive)

    # Assert
    assert result == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc).isoformat()
