import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.core.deps import get_db
from app.core.security import hash_password
from app.db.base import Base
from app.db.session import make_engine
from app.main import app
from app.models.assignment import Assignment, GroupingMethod
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.group import Group, GroupMembership
from app.models.section import ClassSection
from app.models.user import User

TEST_DB_FILE = "test_sections.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

# same hooks as production: foreign keys on, BEGIN IMMEDIATE
engine = make_engine(TEST_DB_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# bcrypt is slow on purpose; hash the shared test password once
PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


def _user(email: str, role: str, full_name: str, student_number: str | None = None) -> User:
    return User(
        email=email,
        full_name=full_name,
        role=role,
        student_number=student_number,
        hashed_password=PASSWORD_HASH,
    )


@pytest.fixture(autouse=True)
def seed_data():
    """
    Seed a clean dataset for each test and return the ids tests need.

    - admin1, instructor1 (owns the course and both sections), instructor2
    - student1..student6
    - "Class A" (capacity 30): student1..student4 enrolled,
      with "Project 1" (manual, sizes 2-3, window open now)
    - "Class B" (capacity 2): empty
    """
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        db.query(GroupMembership).delete()
        db.query(Group).delete()
        db.query(Assignment).delete()
        db.query(Enrollment).delete()
        db.query(ClassSection).delete()
        db.query(Course).delete()
        db.query(User).delete()
        db.commit()

        # Users
        admin = _user("admin1@example.com", "admin", "Admin One")
        instructor = _user("instructor1@example.com", "instructor", "Instructor One")
        other_instructor = _user("instructor2@example.com", "instructor", "Instructor Two")
        students = [
            _user(f"student{i}@example.com", "student", f"Student {i}", f"2100{i:02d}")
            for i in range(1, 7)
        ]
        db.add_all([admin, instructor, other_instructor, *students])
        db.commit()

        # Course and sections
        course = Course(code="CS101", title="Intro to Programming", instructor_id=instructor.id)
        db.add(course)
        db.commit()

        section_a = ClassSection(
            course_id=course.id, instructor_id=instructor.id, name="Class A", code="A", capacity=30
        )
        section_b = ClassSection(
            course_id=course.id, instructor_id=instructor.id, name="Class B", code="B", capacity=2
        )
        db.add_all([section_a, section_b])
        db.commit()

        # Enrollments
        db.add_all(
            [Enrollment(section_id=section_a.id, student_id=s.id) for s in students[:4]]
        )

        # Assignment with an open self-service window
        now = datetime.now(timezone.utc)
        assignment = Assignment(
            section_id=section_a.id,
            title="Project 1",
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=1),
            grouping_method=GroupingMethod.MANUAL.value,
            min_group_size=2,
            max_group_size=3,
        )
        db.add(assignment)
        db.commit()

        ids = {
            "admin": admin.id,
            "instructor": instructor.id,
            "other_instructor": other_instructor.id,
            "students": [s.id for s in students],
            "course": course.id,
            "section_a": section_a.id,
            "section_b": section_b.id,
            "assignment": assignment.id,
        }
    finally:
        # release the SQLite write lock before the test runs
        db.close()

    yield ids


@pytest.fixture()
def client():
    """Test client that uses the test DB session via dependency override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def db():
    """A session on the test database for service-level tests."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def session_factory():
    """For tests that need one session per thread."""
    return TestingSessionLocal
