"""Tests for revalidation fan-out over websockets."""

import json
import uuid

from bookkeeper.core.revalidation import PERIODS_VIEW, WebSocketRevalidator
from bookkeeper.core.websocket import WebSocketManager


class FakeWebSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.sent: list[dict] = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(json.loads(text))


async def test_revalidate_reaches_only_the_organization():
    manager = WebSocketManager()
    org_id, other_org_id = uuid.uuid4(), uuid.uuid4()
    member, stranger = FakeWebSocket(), FakeWebSocket()
    await manager.connect(str(org_id), member)
    await manager.connect(str(other_org_id), stranger)

    await WebSocketRevalidator(manager).invalidate(PERIODS_VIEW, org_id)

    assert member.accepted
    assert len(member.sent) == 1
    event = member.sent[0]
    assert event["type"] == "revalidate"
    assert event["path"] == PERIODS_VIEW
    assert event["organization_id"] == str(org_id)
    assert "timestamp" in event
    assert stranger.sent == []


async def test_dead_connections_are_dropped():
    manager = WebSocketManager()
    org_id = uuid.uuid4()
    await manager.connect(str(org_id), FakeWebSocket(fail=True))
    await manager.connect(str(org_id), FakeWebSocket())

    await WebSocketRevalidator(manager).invalidate(PERIODS_VIEW, org_id)

    assert manager.connection_count(str(org_id)) == 1


async def test_revalidate_without_listeners_is_harmless():
    await WebSocketRevalidator(WebSocketManager()).invalidate(PERIODS_VIEW, uuid.uuid4())
