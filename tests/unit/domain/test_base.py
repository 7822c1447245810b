"""Unit tests for base domain models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from deployer.domain.models.base import (
    AggregateRoot,
    DomainEntity,
    DomainEvent,
    generate_id,
    utc_now,
    ValueObject,
)


class Port(ValueObject):
    number: int


class TestIdentity:
    def test_ids_are_unique(self) -> None:
        assert len({generate_id() for _ in range(100)}) == 100

    def test_now_is_timezone_aware(self) -> None:
        assert utc_now().tzinfo is not None


class TestValueObject:
    def test_frozen(self) -> None:
        port = Port(number=22)
        with pytest.raises(ValidationError):
            port.number = 2222  # type: ignore[misc]

    def test_equal_by_value(self) -> None:
        assert Port(number=22) == Port(number=22)


class TestDomainEntity:
    def test_touch_moves_updated_at(self) -> None:
        entity = DomainEntity()
        before = entity.updated_at
        entity.touch()
        assert entity.updated_at >= before
        assert entity.created_at <= entity.updated_at


class TestDomainEvent:
    def test_payload_is_json_safe(self) -> None:
        event = DomainEvent(event_type="pipeline.started", run_id="r-1", job="petclinic")
        payload = event.to_payload()
        assert payload["event_type"] == "pipeline.started"
        assert payload["run_id"] == "r-1"
        assert isinstance(payload["occurred_at"], str)


class TestAggregateRoot:
    def test_collect_drains_pending(self) -> None:
        aggregate = AggregateRoot()
        aggregate.add_event(DomainEvent(event_type="a", run_id="r-1", job="petclinic"))
        aggregate.add_event(DomainEvent(event_type="b", run_id="r-1", job="petclinic"))
        assert [e.event_type for e in aggregate.collect_events()] == ["a", "b"]
        assert aggregate.pending_events == []
        assert aggregate.collect_events() == []

    def test_buffers_are_per_instance(self) -> None:
        first, second = AggregateRoot(), AggregateRoot()
        first.add_event(DomainEvent(event_type="a", run_id="r-1", job="petclinic"))
        assert second.pending_events == []
