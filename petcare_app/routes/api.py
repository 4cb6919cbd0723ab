"""
REST API Endpoints for the Pet-Care Task Service.

Thin request/response layer over the lifecycle engine and the
authorization gate.  Handlers parse the request, call one engine
operation and wrap the result in the response envelope
``{"success": ..., "data": ..., "message": ...}``.  Every failure is a
``ServiceError`` rendered by a single error handler.

Endpoints:
    GET    /api/health                    - Service health check (public)
    GET    /api/tasks                     - List tasks, newest first (public)
    GET    /api/tasks/<id>                - Retrieve a single task (public)
    POST   /api/tasks                     - Post a task (owner)
    POST   /api/tasks/<id>/apply          - Apply to an open task (helper)
    POST   /api/tasks/<id>/assign         - Assign an applicant (owner)
    POST   /api/tasks/<id>/complete       - Complete a task (owner)
    GET    /api/me/tasks                  - Caller's posted and applied tasks
    GET    /api/pets                      - Caller's pets
    POST   /api/pets                      - Register a pet (owner)
"""

from __future__ import annotations

import logging
import os
from typing import Any

from flask import Blueprint, Response, jsonify, request

from ..auth import Identity, require_auth
from ..errors import InternalError, ServiceError, ValidationError
from ..lifecycle import (
    applied_tasks,
    apply_to_task,
    assign_helper,
    complete_task,
    create_task,
    get_task,
    list_tasks,
    posted_tasks,
)
from ..models import Role
from ..pets import create_pet, list_pets

logger = logging.getLogger(__name__)

api_bp = Blueprint("petcare_api", __name__)


# =====================================================================
# Helper Functions
# =====================================================================


def _success(data: Any = None, status: int = 200, message: str | None = None):
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be JSON")
    return data


# =====================================================================
# API Endpoints
# =====================================================================


@api_bp.route("/health", methods=["GET"])
def health_check() -> tuple[Response, int]:
    """Liveness probe; public."""
    return (
        jsonify(
            {
                "status": "healthy",
                "service": "petcare-tasks",
                "environment": os.getenv("ENVIRONMENT", "unknown"),
            }
        ),
        200,
    )


@api_bp.route("/tasks", methods=["GET"])
def get_tasks() -> tuple[Response, int]:
    """
    List all tasks, newest first.

    Supports optional ``status`` and ``category`` query-string filters.
    """
    tasks = list_tasks(
        status=request.args.get("status"),
        category=request.args.get("category"),
    )
    return _success([task.to_dict() for task in tasks])


@api_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task_detail(task_id: int) -> tuple[Response, int]:
    return _success(get_task(task_id).to_dict())


@api_bp.route("/tasks", methods=["POST"])
@require_auth(Role.OWNER)
def post_task(identity: Identity) -> tuple[Response, int]:
    """
    Post a new task.

    Expects ``title``, ``category``, ``location``, ``pet_id`` and at least
    one of ``budget`` / ``reward``.  Optional: ``description``, ``date``,
    ``time``, ``due_date``, ``image``.
    """
    task = create_task(identity, _json_body())
    return _success(task.to_dict(), 201, "Task created")


@api_bp.route("/tasks/<int:task_id>/apply", methods=["POST"])
@require_auth(Role.HELPER)
def apply(task_id: int, identity: Identity) -> tuple[Response, int]:
    task = apply_to_task(identity, task_id)
    return _success(task.to_dict(), message="Application submitted")


@api_bp.route("/tasks/<int:task_id>/assign", methods=["POST"])
@require_auth(Role.OWNER)
def assign(task_id: int, identity: Identity) -> tuple[Response, int]:
    """Assign the applicant named by ``helper_id`` in the JSON body."""
    data = _json_body()
    task = assign_helper(identity, task_id, data.get("helper_id"))
    return _success(task.to_dict(), message="Helper assigned")


@api_bp.route("/tasks/<int:task_id>/complete", methods=["POST"])
@require_auth(Role.OWNER)
def complete(task_id: int, identity: Identity) -> tuple[Response, int]:
    task = complete_task(identity, task_id)
    return _success(task.to_dict(), message="Task completed")


@api_bp.route("/me/tasks", methods=["GET"])
@require_auth()
def my_tasks(identity: Identity) -> tuple[Response, int]:
    """The caller's posted and applied tasks, both computed from the task records."""
    return _success(
        {
            "posted": [task.to_dict() for task in posted_tasks(identity.id)],
            "applied": [task.to_dict() for task in applied_tasks(identity.id)],
        }
    )


@api_bp.route("/pets", methods=["GET"])
@require_auth()
def get_pets(identity: Identity) -> tuple[Response, int]:
    return _success([pet.to_dict() for pet in list_pets(identity.id)])


@api_bp.route("/pets", methods=["POST"])
@require_auth(Role.OWNER)
def post_pet(identity: Identity) -> tuple[Response, int]:
    pet = create_pet(identity, _json_body())
    return _success(pet.to_dict(), 201, "Pet registered")


# =====================================================================
# Error Handlers
# =====================================================================


@api_bp.errorhandler(ServiceError)
def service_error(error: ServiceError) -> tuple[Response, int]:
    """Render a lifecycle or auth failure as a stable (kind, message) pair."""
    if isinstance(error, InternalError):
        logger.error("Internal error: %s", error.message)
    return jsonify(error.to_dict()), error.status_code


@api_bp.errorhandler(400)
def bad_request(_: Exception) -> tuple[Response, int]:
    return jsonify({"success": False, "error": "validation_error", "message": "Bad request"}), 400


@api_bp.errorhandler(404)
def not_found(_: Exception) -> tuple[Response, int]:
    return jsonify({"success": False, "error": "not_found", "message": "Resource not found"}), 404


@api_bp.errorhandler(405)
def method_not_allowed(_: Exception) -> tuple[Response, int]:
    return (
        jsonify({"success": False, "error": "validation_error", "message": "Method not allowed"}),
        405,
    )


@api_bp.errorhandler(500)
def internal_error(error: Exception) -> tuple[Response, int]:
    logger.error("Internal server error: %s", error)
    return (
        jsonify({"success": False, "error": "internal_error", "message": "Internal server error"}),
        500,
    )
