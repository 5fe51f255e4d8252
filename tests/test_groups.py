import math
import random

import pytest
from sqlalchemy import delete

from app.core.errors import (
    NO_ELIGIBLE_STUDENTS,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
)
from app.models.assignment import Assignment, GroupingMethod
from app.models.enrollment import Enrollment
from app.models.group import Group, GroupMembership
from app.services import ledger
from app.services.grouping import GroupFormationEngine, group_letters, next_group_names


def login(client, email: str, password: str = "password123") -> str:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["access_token"]


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def create_manual(client, token, assignment_id, name, member_ids, leader_id=None):
    return client.post(
        f"/assignments/{assignment_id}/groups/manual",
        headers=auth_header(token),
        json={"name": name, "member_ids": member_ids, "leader_id": leader_id},
    )


def test_group_names():
    assert group_letters(0) == "A"
    assert group_letters(25) == "Z"
    assert group_letters(26) == "AA"
    assert next_group_names({"Group A", "Group C"}, 3) == ["Group B", "Group D", "Group E"]


# --- manual ---


def test_create_manual_group(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    s1, s2 = seed_data["students"][:2]

    r = create_manual(client, instructor, seed_data["assignment"], "Team Rocket", [s2, s1], s1)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["name"] == "Team Rocket"
    assert body["creation_method"] == "manual"
    assert body["member_count"] == 2
    assert body["max_size"] == 3
    # leader listed first
    assert body["members"][0]["student_id"] == s1
    assert body["members"][0]["is_leader"] is True
    assert body["members"][1]["is_leader"] is False


def test_manual_group_rejects_bad_input(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    aid = seed_data["assignment"]
    s1, s2, _, _, s5, _ = seed_data["students"]

    assert create_manual(client, instructor, aid, "  ", [s1]).status_code == 400
    assert create_manual(client, instructor, aid, "Empty", []).status_code == 400
    assert create_manual(client, instructor, aid, "Dup", [s1, s1]).status_code == 400
    assert create_manual(client, instructor, aid, "Lead", [s1], s2).status_code == 400

    r = create_manual(client, instructor, aid, "Outsider", [s1, s5])
    assert r.status_code == 400
    assert r.json()["code"] == "NOT_ENROLLED"

    assert create_manual(client, instructor, 999_999, "Nowhere", [s1]).status_code == 404


def test_manual_group_already_grouped(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    aid = seed_data["assignment"]
    s1, s2, s3 = seed_data["students"][:3]

    assert create_manual(client, instructor, aid, "One", [s1, s2]).status_code == 201

    r = create_manual(client, instructor, aid, "Two", [s2, s3])
    assert r.status_code == 409
    assert r.json()["code"] == "ALREADY_GROUPED"

    # nothing from the failed call was written
    r = client.get(f"/assignments/{aid}/groups", headers=auth_header(instructor))
    assert [g["name"] for g in r.json()] == ["One"]


def test_manual_group_requires_owner(client, seed_data):
    s1 = seed_data["students"][0]

    other = login(client, "instructor2@example.com")
    r = create_manual(client, other, seed_data["assignment"], "Team", [s1])
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_OWNER"

    student = login(client, "student1@example.com")
    r = create_manual(client, student, seed_data["assignment"], "Team", [s1])
    assert r.status_code == 403


# --- dispatch on the assignment's method ---


def test_dispatch_uses_stored_method(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    aid = seed_data["assignment"]  # manual

    r = client.post(
        f"/assignments/{aid}/groups",
        headers=auth_header(instructor),
        json={"method": "automatic", "group_size": 2},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_ARGUMENT"

    s1, s2 = seed_data["students"][:2]
    r = client.post(
        f"/assignments/{aid}/groups",
        headers=auth_header(instructor),
        json={"method": "manual", "name": "Team", "member_ids": [s1, s2]},
    )
    assert r.status_code == 201, r.text
    assert len(r.json()) == 1


def test_dispatch_rejects_unknown_method(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    r = client.post(
        f"/assignments/{seed_data['assignment']}/groups",
        headers=auth_header(instructor),
        json={"method": "lottery"},
    )
    assert r.status_code == 422


# --- automatic ---


@pytest.fixture()
def automatic_assignment(session_factory, seed_data):
    """The seeded assignment, switched to automatic grouping."""
    with session_factory() as s:
        s.get(Assignment, seed_data["assignment"]).grouping_method = GroupingMethod.AUTOMATIC.value
        s.commit()
    return seed_data["assignment"]


def _enroll_everyone(db, seed_data):
    for sid in seed_data["students"][4:]:
        db.add(Enrollment(section_id=seed_data["section_a"], student_id=sid))
    db.commit()


@pytest.mark.parametrize("group_size", [1, 2, 3, 4, 5, 6, 7])
def test_automatic_partition(db, seed_data, automatic_assignment, group_size):
    _enroll_everyone(db, seed_data)  # 6 students
    engine = GroupFormationEngine(db, rng=random.Random(1234))

    groups = engine.create_automatic_groups(automatic_assignment, group_size)

    sizes = [len(g.memberships) for g in groups]
    assert len(groups) == math.ceil(6 / group_size)
    assert sum(sizes) == 6
    assert all(size <= group_size for size in sizes)
    assert sum(1 for size in sizes if size < group_size) <= 1

    members = [m.student_id for g in groups for m in g.memberships]
    assert sorted(members) == sorted(seed_data["students"])
    for g in groups:
        assert sum(1 for m in g.memberships if m.is_leader) == 1
        assert g.creation_method == "automatic"
    assert [g.name for g in groups] == next_group_names(set(), len(groups))


def test_automatic_same_seed_same_groups(db, automatic_assignment):
    aid = automatic_assignment

    first = GroupFormationEngine(db, rng=random.Random(7)).create_automatic_groups(aid, 2)
    layout = [sorted(m.student_id for m in g.memberships) for g in first]
    for g in first:
        db.delete(g)
    db.commit()

    second = GroupFormationEngine(db, rng=random.Random(7)).create_automatic_groups(aid, 2)
    assert [sorted(m.student_id for m in g.memberships) for g in second] == layout


def test_automatic_skips_already_grouped_and_taken_names(db, seed_data, automatic_assignment):
    aid = automatic_assignment
    engine = GroupFormationEngine(db, rng=random.Random(0))

    first = engine.create_automatic_groups(aid, 3)
    assert [g.name for g in first] == ["Group A", "Group B"]
    already = {m.student_id for g in first for m in g.memberships}

    _enroll_everyone(db, seed_data)
    second = engine.create_automatic_groups(aid, 3)

    assert [g.name for g in second] == ["Group C"]
    assert {m.student_id for m in second[0].memberships} == set(seed_data["students"][4:])
    assert not already & {m.student_id for m in second[0].memberships}


def test_automatic_empty_pool(db, automatic_assignment):
    aid = automatic_assignment
    engine = GroupFormationEngine(db, rng=random.Random(0))
    engine.create_automatic_groups(aid, 4)

    with pytest.raises(ConflictError) as exc:
        engine.create_automatic_groups(aid, 2)
    assert exc.value.code == NO_ELIGIBLE_STUDENTS
    assert db.query(Group).filter(Group.assignment_id == aid).count() == 1


@pytest.mark.parametrize("group_size", [0, -1, 21])
def test_automatic_invalid_size(db, automatic_assignment, group_size):
    with pytest.raises(InvalidArgumentError):
        GroupFormationEngine(db).create_automatic_groups(automatic_assignment, group_size)
    assert db.query(Group).count() == 0


def test_automatic_over_http(client, automatic_assignment):
    instructor = login(client, "instructor1@example.com")
    aid = automatic_assignment

    r = client.post(
        f"/assignments/{aid}/groups/automatic",
        headers=auth_header(instructor),
        json={"group_size": 3},
    )
    assert r.status_code == 201, r.text
    assert [g["member_count"] for g in r.json()] == [3, 1]

    r = client.post(
        f"/assignments/{aid}/groups/automatic",
        headers=auth_header(instructor),
        json={"group_size": 3},
    )
    assert r.status_code == 409
    assert r.json()["code"] == "NO_ELIGIBLE_STUDENTS"


def test_creation_routes_follow_stored_method(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    aid = seed_data["assignment"]  # manual
    s1 = seed_data["students"][0]

    r = client.post(
        f"/assignments/{aid}/groups/automatic",
        headers=auth_header(instructor),
        json={"group_size": 2},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_ARGUMENT"

    r = client.post(
        f"/assignments/{aid}/student-choice",
        headers=auth_header(instructor),
        json={"min_size": 2, "max_size": 3, "number_of_groups": 0},
    )
    assert r.status_code == 200, r.text

    # now student_choice: neither manual nor automatic creation applies
    r = create_manual(client, instructor, aid, "Team", [s1])
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_ARGUMENT"
    r = client.post(
        f"/assignments/{aid}/groups/automatic",
        headers=auth_header(instructor),
        json={"group_size": 2},
    )
    assert r.status_code == 400

    r = client.get(f"/assignments/{aid}/groups", headers=auth_header(instructor))
    assert r.json() == []


def test_manual_creation_refused_on_automatic_assignment(db, automatic_assignment, seed_data):
    with pytest.raises(InvalidArgumentError):
        GroupFormationEngine(db).create_manual_group(
            automatic_assignment, "Team", seed_data["students"][:2]
        )
    assert db.query(Group).count() == 0


# --- registry maintenance ---


def test_list_ungrouped_and_delete_group(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    aid = seed_data["assignment"]
    s1, s2, s3, s4 = seed_data["students"][:4]

    group_id = create_manual(client, instructor, aid, "Team", [s1, s2]).json()["id"]

    r = client.get(f"/assignments/{aid}/students/ungrouped", headers=auth_header(instructor))
    assert r.status_code == 200, r.text
    assert [s["id"] for s in r.json()] == [s3, s4]

    r = client.delete(f"/groups/{group_id}", headers=auth_header(instructor))
    assert r.status_code == 204

    r = client.get(f"/assignments/{aid}/students/ungrouped", headers=auth_header(instructor))
    assert [s["id"] for s in r.json()] == [s1, s2, s3, s4]

    r = client.delete(f"/groups/{group_id}", headers=auth_header(instructor))
    assert r.status_code == 404


def test_add_and_remove_member(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    aid = seed_data["assignment"]
    s1, s2, s3, s4 = seed_data["students"][:4]

    group_id = create_manual(client, instructor, aid, "Team", [s1]).json()["id"]

    def add(student_id):
        return client.post(
            f"/groups/{group_id}/members",
            headers=auth_header(instructor),
            json={"student_id": student_id},
        )

    r = add(s2)
    assert r.status_code == 201, r.text
    assert r.json()["is_leader"] is False
    assert add(s3).status_code == 201

    # max_group_size is 3
    r = add(s4)
    assert r.status_code == 409
    assert r.json()["code"] == "GROUP_FULL"

    r = add(s2)
    assert r.status_code == 409
    assert r.json()["code"] == "ALREADY_GROUPED"

    r = client.delete(f"/groups/{group_id}/members/{s3}", headers=auth_header(instructor))
    assert r.status_code == 204
    r = client.delete(f"/groups/{group_id}/members/{s3}", headers=auth_header(instructor))
    assert r.status_code == 404

    assert add(s4).status_code == 201


def test_add_member_only_to_manual_groups(db, seed_data, automatic_assignment):
    engine = GroupFormationEngine(db, rng=random.Random(3))
    group = engine.create_automatic_groups(automatic_assignment, 4)[0]
    _enroll_everyone(db, seed_data)

    with pytest.raises(InvalidArgumentError) as exc:
        engine.add_member(group.id, seed_data["students"][5])
    assert exc.value.code == "NOT_MANUAL"

    with pytest.raises(InvalidArgumentError):
        engine.remove_member(group.id, group.memberships[0].student_id)


def test_group_deleted_before_lock_is_not_found(db, seed_data, monkeypatch):
    s1 = seed_data["students"][0]
    engine = GroupFormationEngine(db)
    group_id = engine.create_manual_group(seed_data["assignment"], "Team", [s1]).id

    # another request removes the group while this one waits for the assignment lock
    real_lock = ledger.lock_assignment

    def lock_after_delete(session, assignment_id):
        session.execute(delete(Group).where(Group.id == group_id))
        return real_lock(session, assignment_id)

    monkeypatch.setattr(ledger, "lock_assignment", lock_after_delete)

    with pytest.raises(NotFoundError):
        engine.add_member(group_id, seed_data["students"][1])


def test_groups_listed_in_creation_order(db, seed_data):
    engine = GroupFormationEngine(db)
    engine.enable_student_choice(seed_data["assignment"], 1, 2, number_of_groups=28)

    names = [g.name for g in engine.list_groups(seed_data["assignment"])]
    assert names[25:] == ["Group Z", "Group AA", "Group AB"]
    assert names == next_group_names(set(), 28)


# --- student choice settings ---


def test_enable_and_disable_student_choice(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    aid = seed_data["assignment"]
    url = f"/assignments/{aid}/student-choice"

    r = client.post(url, headers=auth_header(instructor), json={"min_size": 2, "max_size": 3})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["student_choice_enabled"] is True
    # 4 enrolled, up to 3 per group
    assert [g["name"] for g in body["created_groups"]] == ["Group A", "Group B"]

    # re-enabling keeps the groups and only overwrites the bounds
    r = client.post(url, headers=auth_header(instructor), json={"min_size": 1, "max_size": 2})
    assert r.status_code == 200, r.text
    assert r.json()["created_groups"] == []

    r = client.get(f"/assignments/{aid}/groups", headers=auth_header(instructor))
    groups = r.json()
    assert len(groups) == 2
    assert all(g["max_size"] == 2 for g in groups)

    r = client.delete(url, headers=auth_header(instructor))
    assert r.status_code == 200, r.text
    assert r.json()["student_choice_enabled"] is False
    assert r.json()["grouping_method"] == "student_choice"


def test_enable_student_choice_invalid_bounds(client, seed_data):
    instructor = login(client, "instructor1@example.com")
    r = client.post(
        f"/assignments/{seed_data['assignment']}/student-choice",
        headers=auth_header(instructor),
        json={"min_size": 3, "max_size": 2},
    )
    assert r.status_code == 400


def test_deleting_group_removes_memberships(db, seed_data):
    aid = seed_data["assignment"]
    s1, s2 = seed_data["students"][:2]
    engine = GroupFormationEngine(db)
    group = engine.create_manual_group(aid, "Team", [s1, s2])

    engine.delete_group(group.id)

    assert db.query(GroupMembership).filter(GroupMembership.assignment_id == aid).count() == 0
