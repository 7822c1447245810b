"""Base domain model classes."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr


def generate_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ValueObject(BaseModel):
    """Immutable, compared by value."""

    model_config = {"frozen": True}


class DomainEntity(BaseModel):
    """Mutable record with identity; ``touch`` bumps ``updated_at``."""

    id: str = Field(default_factory=generate_id)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def touch(self) -> None:
        self.updated_at = utc_now()

    model_config = {"frozen": False, "validate_assignment": True}


class DomainEvent(BaseModel):
    """Something that happened to a pipeline run."""

    event_id: str = Field(default_factory=generate_id)
    event_type: str = ""
    run_id: str
    job: str
    occurred_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe form handed to event subscribers."""
        return self.model_dump(mode="json")


class AggregateRoot(DomainEntity):
    """Entity that buffers domain events until the caller drains them."""

    _pending: list[DomainEvent] = PrivateAttr(default_factory=list)

    def add_event(self, event: DomainEvent) -> None:
        self._pending.append(event)

    def collect_events(self) -> list[DomainEvent]:
        events, self._pending = self._pending, []
        return events

    @property
    def pending_events(self) -> list[DomainEvent]:
        return list(self._pending)
