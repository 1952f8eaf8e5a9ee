from __future__ import annotations

import random
from collections import Counter

from services.room_manager import RoomManager


def test_join_creates_room_and_is_idempotent():
    rooms = RoomManager()

    assert rooms.join("course-1", "a") == 1
    assert rooms.join("course-1", "a") == 1
    assert rooms.members_of("course-1") == frozenset({"a"})
    assert rooms.rooms_of("a") == frozenset({"course-1"})


def test_unknown_room_has_no_members():
    rooms = RoomManager()
    assert rooms.members_of("nope") == frozenset()
    assert rooms.leave("nope", "a") == 0


def test_last_leave_discards_room():
    rooms = RoomManager()
    rooms.join("course-1", "a")
    rooms.join("course-1", "b")

    assert rooms.leave("course-1", "a") == 1
    assert rooms.rooms_info() == {"course-1": 1}
    assert rooms.leave("course-1", "b") == 0
    assert rooms.rooms_info() == {}
    assert len(rooms) == 0


def test_leave_is_idempotent():
    rooms = RoomManager()
    rooms.join("course-1", "a")
    rooms.join("course-1", "b")
    rooms.leave("course-1", "a")
    rooms.leave("course-1", "a")
    assert rooms.members_of("course-1") == frozenset({"b"})


def test_leave_all_removes_every_membership():
    rooms = RoomManager()
    rooms.join("course-1", "a")
    rooms.join("course-2", "a")
    rooms.join("course-2", "b")

    assert rooms.leave_all("a") == ["course-1", "course-2"]
    assert rooms.rooms_of("a") == frozenset()
    assert rooms.rooms_info() == {"course-2": 1}
    assert rooms.leave_all("a") == []


def test_members_of_returns_snapshot():
    rooms = RoomManager()
    rooms.join("course-1", "a")
    snapshot = rooms.members_of("course-1")
    rooms.join("course-1", "b")
    assert snapshot == frozenset({"a"})


def test_membership_matches_join_leave_history():
    rng = random.Random(1234)
    rooms = RoomManager()
    connections = ["a", "b", "c", "d"]
    room_ids = ["course-1", "course-2", "course-3"]
    expected: Counter = Counter()

    for _ in range(500):
        room_id = rng.choice(room_ids)
        conn = rng.choice(connections)
        if rng.random() < 0.55:
            rooms.join(room_id, conn)
            expected[(room_id, conn)] = 1
        else:
            rooms.leave(room_id, conn)
            expected[(room_id, conn)] = 0

    for room_id in room_ids:
        members = {conn for conn in connections if expected[(room_id, conn)]}
        assert rooms.members_of(room_id) == frozenset(members)
    for conn in connections:
        joined = {room_id for room_id in room_ids if expected[(room_id, conn)]}
        assert rooms.rooms_of(conn) == frozenset(joined)
