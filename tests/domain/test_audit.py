"""
Tests for audit entries and the in-memory sink.
"""

from datetime import datetime, timezone
from uuid import uuid4

from production_kernel.domain.audit import (
    ArticleAction,
    AuditEntry,
    FloorEvent,
    InMemoryAuditSink,
    OperationMetadata,
)

NOW = datetime(2024, 5, 2, 14, 30, tzinfo=timezone.utc)


def _entry(action=ArticleAction.TRANSFERRED, remarks=None, event_remarks=None):
    event = FloorEvent(
        action=action,
        from_floor="Knitting",
        to_floor="Linking",
        quantity=40,
        previous_value={"transferred": 0},
        new_value={"transferred": 40},
        remarks=event_remarks,
    )
    return AuditEntry.from_event(
        event,
        article_id=uuid4(),
        order_id=uuid4(),
        metadata=OperationMetadata(actor="line-lead", remarks=remarks),
        timestamp=NOW,
    )


class TestAuditEntry:

    def test_entry_carries_event_and_metadata(self):
        entry = _entry()

        assert entry.action == ArticleAction.TRANSFERRED
        assert entry.quantity == 40
        assert entry.actor == "line-lead"
        assert entry.timestamp == NOW

    def test_caller_remarks_take_precedence(self):
        assert _entry(remarks="caller", event_remarks="engine").remarks == "caller"
        assert _entry(event_remarks="engine").remarks == "engine"

    def test_payload_is_json_ready(self):
        entry = _entry()

        payload = entry.to_payload()

        assert payload["action"] == "transferred"
        assert payload["article_id"] == str(entry.article_id)
        assert payload["timestamp"] == NOW.isoformat()

    def test_default_actor_is_system(self):
        assert OperationMetadata().actor == "system"


class TestInMemoryAuditSink:

    def test_entries_kept_in_order_and_filterable(self):
        sink = InMemoryAuditSink()
        first = _entry(ArticleAction.QUANTITY_UPDATED)
        second = _entry(ArticleAction.TRANSFERRED)

        sink.append(first)
        sink.append(second)

        assert sink.entries == (first, second)
        assert sink.for_action(ArticleAction.TRANSFERRED) == [second]
