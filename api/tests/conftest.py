import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

import pytest

from app import models  # noqa: F401
from app.database import Base, engine
from app.services import event_bus as eb
from app.services import formation
from app.services.rate_limit import limiter

ALL_EVENT_TYPES = [
    eb.BUBBLE_FORMED,
    eb.MATCH_CREATED,
    eb.NEW_LIKE,
    eb.GROUP_MEMBER_JOINED,
    eb.NEW_INVITATION,
    eb.INVITATION_DECLINED,
]


class EventRecorder:
    def __init__(self, bus):
        self.events = []
        for event_type in ALL_EVENT_TYPES:
            bus.subscribe(event_type, lambda payload, et=event_type: self.events.append((et, payload)))

    def of(self, event_type):
        return [payload for et, payload in self.events if et == event_type]


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    limiter.reset()
    yield


@pytest.fixture
def bus():
    return eb.EventBus()


@pytest.fixture
def recorder(bus):
    return EventRecorder(bus)


@pytest.fixture
def make_group(bus):
    counter = {"n": 0}

    def _make(name=None, size=2, joined=None, group_gender=None, preferred_gender=None):
        counter["n"] += 1
        name = name or f"Group {counter['n']}"
        joined = size if joined is None else joined
        founders = [formation.create_member(f"{name} member {i}")["id"] for i in range(joined)]
        return formation.create_group(
            bus,
            founders[0],
            name,
            size,
            member_ids=founders[1:],
            group_gender=group_gender,
            preferred_gender=preferred_gender,
        )

    return _make
