"""
Transport component unit tests.

Batching, fallback delivery and the durable spool, driven through
httpx.MockTransport so no network is touched.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from src.components.identity import ClientIdentity, InMemoryStorage, build_runtime_context
from src.components.transport import (
    OUTBOX_KEY,
    DeliveryStatus,
    EventTransport,
    HttpxSender,
    build_event_payload,
    create_event_transport,
)
from src.rules.models import TransportRules

NOW = datetime(2024, 4, 1, 8, 0, 0, tzinfo=UTC)

# --- Helpers ---


class RecordingServer:
    """MockTransport handler that records posted envelopes."""

    def __init__(self, status_code: int = 201) -> None:
        self.status_code = status_code
        self.envelopes: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.envelopes.append(json.loads(request.content))
        return httpx.Response(self.status_code, json={"stored": 1})

    @property
    def events(self) -> list[dict[str, Any]]:
        return [e for env in self.envelopes for e in env["events"]]


def make_sender(server: Any) -> HttpxSender:
    client = httpx.Client(base_url="http://telemetry.test", transport=httpx.MockTransport(server))
    return HttpxSender(client)


def failing_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def identity() -> ClientIdentity:
    return ClientIdentity()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


# --- Sender ---


class TestHttpxSender:
    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (201, DeliveryStatus.DELIVERED),
            (200, DeliveryStatus.DELIVERED),
            (400, DeliveryStatus.REJECTED),
            (401, DeliveryStatus.REJECTED),
            (429, DeliveryStatus.DEFERRED),
            (500, DeliveryStatus.DEFERRED),
            (503, DeliveryStatus.DEFERRED),
        ],
    )
    def test_status_mapping(self, status_code: int, expected: DeliveryStatus) -> None:
        sender = make_sender(RecordingServer(status_code))
        assert sender.send({"events": []}) == expected

    def test_network_error_is_deferred(self) -> None:
        assert make_sender(failing_handler).send({"events": []}) == DeliveryStatus.DEFERRED

    def test_posts_to_events_endpoint(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(201)

        make_sender(handler).send({"events": []})
        assert seen == ["/events"]


# --- Payload ---


class TestBuildEventPayload:
    def test_required_fields(self, identity: ClientIdentity) -> None:
        ctx = build_runtime_context()
        payload = build_event_payload(identity, "tool_used", None, None, ctx, NOW)
        assert payload["anonymous_id"] == identity.get_anonymous_id()
        assert payload["session_id"]
        assert payload["event_name"] == "tool_used"
        assert payload["created_at"] == "2024-04-01T08:00:00Z"

    def test_optional_fields_omitted_when_none(self, identity: ClientIdentity) -> None:
        ctx = build_runtime_context(user_agent="ua")
        payload = build_event_payload(identity, "e", None, None, ctx, NOW)
        assert "tool_name" not in payload
        assert "properties" not in payload
        assert "locale" not in payload
        assert payload["user_agent"] == "ua"
        assert payload["soft_fingerprint"] == ctx.soft_fingerprint

    def test_properties_and_tool(self, identity: ClientIdentity) -> None:
        payload = build_event_payload(
            identity, "e", {"size": "0-100"}, "qr", build_runtime_context(), NOW
        )
        assert payload["tool_name"] == "qr"
        assert payload["properties"] == {"size": "0-100"}


# --- Transport ---


class TestEventTransport:
    def test_flush_sends_envelope(self, identity, storage) -> None:
        server = RecordingServer()
        transport = EventTransport(identity, make_sender(server), storage=storage)

        transport.track("opened", tool_name="qr", now=NOW)
        transport.track("copied", tool_name="qr", now=NOW)
        result = transport.flush()

        assert result.delivered == 2
        assert len(server.envelopes) == 1
        assert [e["event_name"] for e in server.events] == ["opened", "copied"]
        assert transport.pending == 0

    def test_auto_flush_at_batch_size(self, identity) -> None:
        server = RecordingServer()
        transport = EventTransport(identity, make_sender(server), batch_size=3)

        for _ in range(3):
            transport.track("e", now=NOW)

        assert len(server.envelopes) == 1
        assert transport.pending == 0

    def test_flush_chunks_by_batch_size(self, identity, storage) -> None:
        server = RecordingServer()
        transport = EventTransport(identity, make_sender(server), storage=storage, batch_size=10)
        transport._queue = [{"event_name": str(i)} for i in range(25)]

        result = transport.flush()
        assert result.delivered == 25
        assert [len(env["events"]) for env in server.envelopes] == [10, 10, 5]

    def test_fallback_used_when_primary_down(self, identity, storage) -> None:
        fallback = RecordingServer()
        transport = EventTransport(
            identity,
            make_sender(failing_handler),
            fallback=make_sender(fallback),
            storage=storage,
        )
        transport.track("e", now=NOW)
        result = transport.flush()

        assert result.delivered == 1
        assert len(fallback.events) == 1
        assert storage.get_item(OUTBOX_KEY) is None

    def test_spooled_when_all_paths_fail(self, identity, storage) -> None:
        transport = EventTransport(identity, make_sender(failing_handler), storage=storage)
        transport.track("a", now=NOW)
        transport.track("b", now=NOW)

        result = transport.flush()
        assert result.spooled == 2
        assert transport.pending == 2
        spooled = json.loads(storage.get_item(OUTBOX_KEY) or "[]")
        assert [e["event_name"] for e in spooled] == ["a", "b"]

    def test_spool_resent_before_new_events(self, identity, storage) -> None:
        offline = EventTransport(identity, make_sender(failing_handler), storage=storage)
        offline.track("old", now=NOW)
        offline.flush()

        server = RecordingServer()
        online = EventTransport(identity, make_sender(server), storage=storage)
        online.track("new", now=NOW)
        result = online.flush()

        assert [e["event_name"] for e in server.events] == ["old", "new"]
        assert result.delivered == 2
        assert storage.get_item(OUTBOX_KEY) is None

    def test_rejected_batch_dropped(self, identity, storage) -> None:
        server = RecordingServer(status_code=400)
        transport = EventTransport(identity, make_sender(server), storage=storage)
        transport.track("bad", now=NOW)

        result = transport.flush()
        assert result.rejected == 1
        assert transport.pending == 0

    def test_deferred_midway_spools_remainder(self, identity, storage) -> None:
        calls = {"n": 0}

        def flaky(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(201 if calls["n"] == 1 else 503)

        transport = EventTransport(identity, make_sender(flaky), storage=storage, batch_size=2)
        transport._queue = [{"event_name": str(i)} for i in range(5)]

        result = transport.flush()
        assert result.delivered == 2
        assert result.spooled == 3

    def test_spool_bounded_drops_oldest(self, identity, storage) -> None:
        transport = EventTransport(
            identity, make_sender(failing_handler), storage=storage, batch_size=100, max_outbox=3
        )
        for name in ["1", "2", "3", "4", "5"]:
            transport.track(name, now=NOW)

        result = transport.flush()
        assert result.spooled == 3
        spooled = json.loads(storage.get_item(OUTBOX_KEY) or "[]")
        assert [e["event_name"] for e in spooled] == ["3", "4", "5"]

    def test_unreadable_spool_discarded(self, identity, storage) -> None:
        storage.set_item(OUTBOX_KEY, "{not json")
        server = RecordingServer()
        transport = EventTransport(identity, make_sender(server), storage=storage)
        transport.track("e", now=NOW)

        assert transport.flush().delivered == 1

    def test_track_never_raises(self, identity) -> None:
        class ExplodingSender:
            def send(self, envelope: dict[str, Any]) -> DeliveryStatus:
                raise RuntimeError("boom")

        transport = EventTransport(identity, ExplodingSender(), batch_size=1)
        transport.track("e", now=NOW)

    def test_spool_survives_raising_sender(self, identity, storage) -> None:
        offline = EventTransport(identity, make_sender(failing_handler), storage=storage)
        for name in ["a", "b", "c"]:
            offline.track(name, now=NOW)
        offline.flush()

        class RaisingSender:
            def send(self, envelope: dict[str, Any]) -> DeliveryStatus:
                raise TypeError("cannot encode envelope")

        broken = EventTransport(identity, RaisingSender(), storage=storage)
        broken.track("d", now=NOW)
        result = broken.flush()

        assert result.spooled == 4
        spooled = json.loads(storage.get_item(OUTBOX_KEY) or "[]")
        assert [e["event_name"] for e in spooled] == ["a", "b", "c", "d"]

        server = RecordingServer()
        online = EventTransport(identity, make_sender(server), storage=storage)
        assert online.flush().delivered == 4
        assert [e["event_name"] for e in server.events] == ["a", "b", "c", "d"]

    def test_raising_primary_falls_back(self, identity, storage) -> None:
        class RaisingSender:
            def send(self, envelope: dict[str, Any]) -> DeliveryStatus:
                raise RuntimeError("boom")

        server = RecordingServer()
        transport = EventTransport(
            identity, RaisingSender(), fallback=make_sender(server), storage=storage
        )
        transport.track("e", now=NOW)

        assert transport.flush().delivered == 1
        assert [e["event_name"] for e in server.events] == ["e"]

    def test_unencodable_properties_refused(self, identity, storage) -> None:
        server = RecordingServer()
        transport = EventTransport(identity, make_sender(server), storage=storage)
        transport.track("bad", properties={"tags": {"a", "b"}}, now=NOW)
        transport.track("good", now=NOW)

        result = transport.flush()
        assert result.delivered == 1
        assert [e["event_name"] for e in server.events] == ["good"]

    def test_events_share_identity(self, identity) -> None:
        server = RecordingServer()
        transport = EventTransport(identity, make_sender(server))
        transport.track("a", now=NOW)
        transport.track("b", now=NOW)
        transport.flush()

        anon_ids = {e["anonymous_id"] for e in server.events}
        session_ids = {e["session_id"] for e in server.events}
        assert anon_ids == {identity.get_anonymous_id()}
        assert len(session_ids) == 1


def test_create_event_transport_uses_rules(identity) -> None:
    transport = create_event_transport(
        "http://telemetry.test",
        identity,
        rules=TransportRules(endpoint="/v1/events", batch_size=4, max_outbox=7),
        fallback_base_url="http://backup.test",
    )
    assert transport._batch_size == 4
    assert transport._max_outbox == 7
    assert isinstance(transport._sender, HttpxSender)
    assert transport._sender.endpoint == "/v1/events"
    assert transport._fallback is not None
