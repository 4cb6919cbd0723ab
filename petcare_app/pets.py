"""Owner-scoped pet records, the subjects that tasks are posted for."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .auth import Identity
from .errors import InternalError, ValidationError
from .models import Pet

logger = logging.getLogger(__name__)


def create_pet(identity: Identity, data: dict) -> Pet:
    """Register a pet owned by the caller."""
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("'name' is required")
    if len(name) > 120:
        raise ValidationError("'name' must be 120 characters or less")

    for field in ("species", "photo"):
        if data.get(field) is not None and not isinstance(data[field], str):
            raise ValidationError(f"'{field}' must be a string")

    pet = Pet(
        owner_id=identity.id,
        name=name.strip(),
        species=(data.get("species") or "").strip(),
        photo=(data.get("photo") or "").strip(),
    )
    try:
        db.session.add(pet)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure while creating pet")
        raise InternalError("Storage failure while creating pet") from exc

    logger.info("Pet %s registered by user %s", pet.id, identity.id)
    return pet


def list_pets(owner_id: int) -> list[Pet]:
    stmt = select(Pet).where(Pet.owner_id == owner_id).order_by(Pet.id)
    try:
        return list(db.session.scalars(stmt).all())
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure while listing pets")
        raise InternalError("Storage failure while listing pets") from exc
