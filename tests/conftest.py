"""
Shared pytest fixtures for the pet-care task service tests.

Provides the Flask application, test client, a clean database per test,
bearer-token headers, and Faker-backed factories for users, pets and tasks.

Key SDET Concepts Demonstrated:
- Session-scoped vs function-scoped fixtures for performance and isolation
- Factory fixtures that build tasks directly in any lifecycle state
- Tokens minted with an in-process RSA key pair shared with the app config
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable

import pytest
from faker import Faker

from shared.test_helpers import TEST_PUBLIC_KEY, auth_headers, create_test_token

os.environ["FLASK_ENV"] = "testing"
os.environ["TEST_JWT_PUBLIC_KEY"] = TEST_PUBLIC_KEY

from petcare_app import create_app, db
from petcare_app.auth import Identity
from petcare_app.models import Pet, Role, Task, TaskApplicant, TaskCategory, TaskStatus, User

fake = Faker()


@pytest.fixture(scope="session")
def app():
    """Provide the Flask application instance for the entire test session."""
    application = create_app("testing")
    yield application


@pytest.fixture(scope="function")
def client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture(scope="function")
def db_session(app):
    """
    Provide a clean database for each test function.

    Creates all tables before the test and drops them afterwards so no
    rows leak between tests.  The app context stays pushed for the whole
    test, so engine functions can be called directly.
    """
    with app.app_context():
        db.create_all()
        yield db
        db.session.rollback()
        db.drop_all()


@pytest.fixture
def user_factory(db_session) -> Callable[..., User]:
    """Factory that persists users with the given role names."""

    def _create_user(
        *,
        roles: Iterable[str] = (Role.OWNER.value,),
        name: str | None = None,
        email: str | None = None,
    ) -> User:
        user = User(
            name=name or fake.name(),
            email=email or fake.unique.email(),
            avatar=fake.image_url(),
            roles=list(roles),
        )
        db_session.session.add(user)
        db_session.session.commit()
        return user

    return _create_user


@pytest.fixture
def pet_factory(db_session) -> Callable[..., Pet]:
    def _create_pet(owner: User, *, name: str | None = None) -> Pet:
        pet = Pet(
            owner_id=owner.id,
            name=name or fake.first_name(),
            species="dog",
            photo=fake.image_url(),
        )
        db_session.session.add(pet)
        db_session.session.commit()
        return pet

    return _create_pet


@pytest.fixture
def task_factory(db_session, pet_factory) -> Callable[..., Task]:
    """
    Factory that inserts a task directly in any state.

    Bypasses the engine so tests can start from ``in_progress``,
    ``completed`` or ``cancelled`` without replaying the workflow.
    """

    def _create_task(
        owner: User,
        *,
        pet: Pet | None = None,
        title: str | None = None,
        status: str = TaskStatus.OPEN.value,
        applicants: Iterable[User] = (),
        assigned_to: User | None = None,
        category: str = TaskCategory.WALK.value,
        budget: float = 20,
    ) -> Task:
        task = Task(
            title=title or fake.sentence(nb_words=3),
            description=fake.paragraph(),
            category=category,
            location=fake.city(),
            budget=budget,
            reward=f"${int(budget)}",
            posted_by=owner.id,
            pet_id=(pet or pet_factory(owner)).id,
            assigned_to=assigned_to.id if assigned_to else None,
            status=status,
            applicant_links=[TaskApplicant(user_id=user.id) for user in applicants],
        )
        db_session.session.add(task)
        db_session.session.commit()
        return task

    return _create_task


@pytest.fixture
def owner(user_factory) -> User:
    return user_factory(roles=[Role.OWNER.value], name="Olivia Owner")


@pytest.fixture
def helper(user_factory) -> User:
    return user_factory(roles=[Role.HELPER.value], name="Harry Helper")


@pytest.fixture
def second_helper(user_factory) -> User:
    return user_factory(roles=[Role.HELPER.value], name="Hana Helper")


@pytest.fixture
def owner_pet(pet_factory, owner) -> Pet:
    return pet_factory(owner, name="Rex")


@pytest.fixture
def identity_for() -> Callable[[User], Identity]:
    """Build the ``Identity`` the gate would resolve for a user."""

    def _identity(user: User) -> Identity:
        return Identity(id=user.id, email=user.email, roles=user.role_set)

    return _identity


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    """Build bearer-token JSON headers for a user."""

    def _headers(user: User) -> dict[str, str]:
        return auth_headers(create_test_token(user_id=user.id))

    return _headers


@pytest.fixture
def valid_task_data(owner_pet) -> dict:
    """Complete, valid task payload for ``owner``'s pet."""
    return {
        "title": "Walk",
        "description": "Thirty minutes around the park",
        "category": TaskCategory.WALK.value,
        "location": "Park",
        "pet_id": owner_pet.id,
        "budget": 20,
        "time": "8-10am",
    }
