"""
Task Lifecycle Engine.

Owns the state machine of a single task and the guards on each
transition::

    open --apply(helper)--> open             (adds an applicant)
    open --assign(owner, helper)--> in_progress
    in_progress --complete(owner)--> completed

Transitions are guarded only by the task's current status and by the
caller's relationship to the task (poster, applicant).  Static role checks
happen earlier, in ``auth.require_auth``.

Every mutation is a single read-modify-write of one task inside one
transaction.  ``Task.version_id`` makes the UPDATE conditional on the row
not having changed since it was read; a lost race is rolled back and the
whole operation, guards included, is re-run against fresh state.

Key Concepts Demonstrated:
- Explicit transition table with a single status guard
- Optimistic concurrency with bounded retry
- All-or-nothing operations (rollback before any error propagates)
- Posted/applied task lists computed on read rather than stored
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from . import db
from .auth import Identity
from .errors import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from .models import Pet, Task, TaskApplicant, TaskCategory, TaskStatus, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.OPEN: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
    # No operation moves a task here yet; kept terminal.
    TaskStatus.CANCELLED: frozenset(),
}

REQUIRED_TASK_FIELDS = ["title", "category", "location", "pet_id"]

MAX_TITLE_LENGTH = 200
MAX_LOCATION_LENGTH = 200
MAX_REWARD_LENGTH = 50
MAX_TIME_LENGTH = 50
MAX_IMAGE_LENGTH = 500
# Keeps a derived reward label within MAX_REWARD_LENGTH.
MAX_BUDGET = 1_000_000


# =====================================================================
# Validation Helpers
# =====================================================================


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_iso_datetime(value: Any) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return False
    return True


def _check_text(data: dict, field: str, max_length: int) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        return f"'{field}' must be a string"
    if len(value) > max_length:
        return f"'{field}' must be {max_length} characters or less"
    return None


def validate_task_data(
    data: dict, required_fields: list[str] | None = None
) -> tuple[bool, str | None]:
    """
    Validate an incoming task payload against the marketplace rules.

    Checks required fields, that at least one form of compensation is
    present, enum membership for ``category``, text lengths, ISO-8601
    conformance for ``date`` / ``due_date`` and numeric ranges.

    Args:
        data: The deserialised JSON request body.
        required_fields: Field names that must be present and non-empty.

    Returns:
        A two-element tuple ``(is_valid, error_message)``.  When valid,
        ``error_message`` is ``None``.
    """
    if required_fields:
        for field in required_fields:
            if _is_blank(data.get(field)):
                return False, f"'{field}' is required"

    if data.get("budget") is None and _is_blank(data.get("reward")):
        return False, "Either budget or reward is required"

    if "category" in data:
        valid_categories = [c.value for c in TaskCategory]
        if data["category"] not in valid_categories:
            return False, f"Invalid category. Must be one of: {valid_categories}"

    for field, max_length in (
        ("title", MAX_TITLE_LENGTH),
        ("location", MAX_LOCATION_LENGTH),
        ("reward", MAX_REWARD_LENGTH),
        ("time", MAX_TIME_LENGTH),
        ("image", MAX_IMAGE_LENGTH),
    ):
        error = _check_text(data, field, max_length)
        if error:
            return False, error

    if data.get("description") is not None and not isinstance(data["description"], str):
        return False, "'description' must be a string"

    budget = data.get("budget")
    if budget is not None:
        if not _is_number(budget) or not math.isfinite(budget) or budget < 0:
            return False, "budget must be a non-negative number"
        if budget > MAX_BUDGET:
            return False, f"budget must be {MAX_BUDGET} or less"

    for field in ("date", "due_date"):
        if data.get(field) and not _is_iso_datetime(data[field]):
            return False, f"Invalid {field} format. Use ISO format (YYYY-MM-DDTHH:MM:SS)"

    pet_id = data.get("pet_id")
    if pet_id is not None and (isinstance(pet_id, bool) or not isinstance(pet_id, int)):
        return False, "pet_id must be an integer"

    return True, None


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(date_string: str | None) -> datetime | None:
    """Parse an optional ISO-8601 string into a UTC datetime."""
    if not date_string:
        return None
    return ensure_utc(datetime.fromisoformat(date_string.replace("Z", "+00:00")))


def format_reward(budget: float) -> str:
    """Display label for a numeric budget, e.g. ``20 -> "$20"``."""
    symbol = current_app.config.get("TASK_CURRENCY_SYMBOL", "$")
    return f"{symbol}{int(budget)}"


def parse_user_id(value: Any, field: str) -> int:
    """Coerce a user reference from a request body into a positive int."""
    if _is_blank(value):
        raise ValidationError(f"{field} is required")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


# =====================================================================
# Storage Helpers
# =====================================================================


@contextmanager
def _storage(action: str) -> Iterator[None]:
    """Translate storage failures into ``InternalError`` after rolling back."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure while %s", action)
        raise InternalError(f"Storage failure while {action}") from exc


def _transition(task: Task, target: TaskStatus) -> None:
    current = TaskStatus(task.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Cannot move task from {current.value} to {target.value}"
        )
    task.status = target.value


def _mutate_task(task_id: int, mutation: Callable[[Task], None], action: str) -> Task:
    """
    Run ``mutation`` against a freshly loaded task and commit it atomically.

    The commit's versioned UPDATE fails with ``StaleDataError`` when another
    writer got there first, and a racing duplicate insert fails with
    ``IntegrityError``.  Either way the session is rolled back and the
    mutation (with its guards) is re-run on the new state, up to
    ``TASK_MUTATION_MAX_ATTEMPTS`` times.
    """
    max_attempts = max(1, int(current_app.config.get("TASK_MUTATION_MAX_ATTEMPTS", 3)))

    for attempt in range(1, max_attempts + 1):
        with _storage(action):
            task = db.session.get(Task, task_id, populate_existing=True)
        if task is None:
            raise NotFoundError("Task not found")

        try:
            mutation(task)
            db.session.commit()
        except ServiceError:
            db.session.rollback()
            raise
        except (StaleDataError, IntegrityError):
            db.session.rollback()
            logger.warning(
                "Concurrent update on task %s while %s (attempt %s/%s)",
                task_id,
                action,
                attempt,
                max_attempts,
            )
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Storage failure on task %s while %s", task_id, action)
            raise InternalError(f"Storage failure while {action}") from exc
        return task

    raise InternalError(
        f"Task {task_id} changed concurrently on every attempt while {action}"
    )


# =====================================================================
# Lifecycle Operations
# =====================================================================


def create_task(identity: Identity, data: dict) -> Task:
    """
    Post a new open task on behalf of an owner.

    Raises:
        ValidationError: A required field is missing or malformed.
        NotFoundError: ``pet_id`` does not resolve to a pet.
        ForbiddenError: The pet belongs to someone else.
    """
    is_valid, error = validate_task_data(data, required_fields=REQUIRED_TASK_FIELDS)
    if not is_valid:
        raise ValidationError(error)

    with _storage("loading pet"):
        pet = db.session.get(Pet, data["pet_id"])
    if pet is None:
        raise NotFoundError("Pet not found")
    if pet.owner_id != identity.id:
        raise ForbiddenError("You can only create tasks for your own pets")

    budget = data.get("budget")
    reward = (data.get("reward") or "").strip()
    if not reward:
        reward = format_reward(budget)
        if len(reward) > MAX_REWARD_LENGTH:
            raise ValidationError(f"'reward' must be {MAX_REWARD_LENGTH} characters or less")

    task = Task(
        title=data["title"].strip(),
        description=(data.get("description") or "").strip(),
        category=data["category"],
        location=data["location"].strip(),
        budget=budget if budget is not None else 0,
        reward=reward,
        date=parse_datetime(data.get("date")) or utcnow(),
        time=(data.get("time") or "").strip(),
        due_date=parse_datetime(data.get("due_date")),
        image=(data.get("image") or "").strip(),
        posted_by=identity.id,
        pet_id=pet.id,
        assigned_to=None,
        status=TaskStatus.OPEN.value,
    )
    with _storage("creating task"):
        db.session.add(task)
        db.session.commit()

    logger.info("Task %s created by user %s for pet %s", task.id, identity.id, pet.id)
    return task


def apply_to_task(identity: Identity, task_id: int) -> Task:
    """
    Add the caller to an open task's applicants.

    Raises:
        NotFoundError: No such task.
        InvalidStateError: The task is not open, or the caller already applied.
        ForbiddenError: The caller posted the task.
    """

    def _apply(task: Task) -> None:
        if task.status != TaskStatus.OPEN.value:
            raise InvalidStateError("Task is not open for applications")
        if task.has_applicant(identity.id):
            raise InvalidStateError("You have already applied to this task")
        if task.posted_by == identity.id:
            raise ForbiddenError("You cannot apply to your own task")
        task.applicant_links.append(TaskApplicant(user_id=identity.id))
        # Touch the task row so the versioned UPDATE serialises this with
        # other writers of the same task.
        task.updated_at = utcnow()

    task = _mutate_task(task_id, _apply, "applying to task")
    logger.info("User %s applied to task %s", identity.id, task_id)
    return task


def assign_helper(identity: Identity, task_id: int, helper_id: Any) -> Task:
    """
    Assign one of the applicants to the task and start it.

    Raises:
        ValidationError: ``helper_id`` is missing or not an id.
        NotFoundError: No such task.
        ForbiddenError: The caller did not post the task.
        InvalidStateError: The task is not open, or the helper never applied.
    """
    helper_id = parse_user_id(helper_id, "helper_id")

    def _assign(task: Task) -> None:
        if task.posted_by != identity.id:
            raise ForbiddenError("Only the task owner can assign a helper")
        if task.status != TaskStatus.OPEN.value:
            raise InvalidStateError("Task is not open for assignment")
        if not task.has_applicant(helper_id):
            raise InvalidStateError("Helper must have applied to the task first")
        task.assigned_to = helper_id
        _transition(task, TaskStatus.IN_PROGRESS)

    task = _mutate_task(task_id, _assign, "assigning helper")
    logger.info("Task %s assigned to user %s by user %s", task_id, helper_id, identity.id)
    return task


def complete_task(identity: Identity, task_id: int) -> Task:
    """
    Mark an in-progress task as completed.

    Raises:
        NotFoundError: No such task.
        ForbiddenError: The caller did not post the task.
        InvalidStateError: The task is not in progress.
    """

    def _complete(task: Task) -> None:
        if task.posted_by != identity.id:
            raise ForbiddenError("Only the task owner can complete a task")
        if task.status != TaskStatus.IN_PROGRESS.value:
            raise InvalidStateError("Task must be in progress to be completed")
        _transition(task, TaskStatus.COMPLETED)

    task = _mutate_task(task_id, _complete, "completing task")
    logger.info("Task %s completed by user %s", task_id, identity.id)
    return task


# =====================================================================
# Reads
# =====================================================================


def _newest_first(stmt):
    return stmt.order_by(Task.created_at.desc(), Task.id.desc())


def list_tasks(status: str | None = None, category: str | None = None) -> list[Task]:
    """
    Return all tasks, newest first, optionally filtered.

    Raises:
        ValidationError: ``status`` or ``category`` is not a known value.
    """
    stmt = select(Task)

    if status:
        valid_statuses = [s.value for s in TaskStatus]
        if status not in valid_statuses:
            raise ValidationError(f"Invalid status. Must be one of: {valid_statuses}")
        stmt = stmt.where(Task.status == status)

    if category:
        valid_categories = [c.value for c in TaskCategory]
        if category not in valid_categories:
            raise ValidationError(f"Invalid category. Must be one of: {valid_categories}")
        stmt = stmt.where(Task.category == category)

    with _storage("listing tasks"):
        return list(db.session.scalars(_newest_first(stmt)).all())


def get_task(task_id: int) -> Task:
    with _storage("loading task"):
        task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    return task


def posted_tasks(user_id: int) -> list[Task]:
    """Tasks posted by ``user_id``, derived from ``Task.posted_by``."""
    stmt = _newest_first(select(Task).where(Task.posted_by == user_id))
    with _storage("listing posted tasks"):
        return list(db.session.scalars(stmt).all())


def applied_tasks(user_id: int) -> list[Task]:
    """Tasks ``user_id`` applied to, derived from the applicant rows."""
    stmt = _newest_first(
        select(Task)
        .join(TaskApplicant, TaskApplicant.task_id == Task.id)
        .where(TaskApplicant.user_id == user_id)
    )
    with _storage("listing applied tasks"):
        return list(db.session.scalars(stmt).all())
