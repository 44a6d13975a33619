"""
Notification delivery recorder tests.
- Every attempt is its own immutable record with a fresh, increasing id
- Out-of-domain input is rejected before storage
- Insert failures surface as PersistenceError
- track_delivery records provider failures instead of dropping them
"""
import asyncio
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from pymongo.errors import AutoReconnect

from entitlements.exceptions import InvalidArgumentError, PersistenceError
from entitlements.models.delivery import DeliveryChannel, DeliveryResultInput, DeliveryStatus
from entitlements.services.delivery_recorder import DeliveryIdGenerator, NotificationDeliveryRecorder


def _attempt(**fields):
    data = {
        "notification_id": "notif-1",
        "user_id": "user-1",
        "channel": "push",
        "provider": "onesignal",
        "status": "success",
    }
    data.update(fields)
    return data


class TestDeliveryIdGenerator:

    def test_ids_strictly_increase_on_frozen_clock(self):
        generator = DeliveryIdGenerator(clock=lambda: 1_700_000_000_000_000_000)
        ids = [generator.next_id() for _ in range(100)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 100

    def test_clock_going_backwards(self):
        ticks = iter([5_000_000, 4_000_000, 3_000_000])
        generator = DeliveryIdGenerator(clock=lambda: next(ticks))
        first, second, third = generator.next_id(), generator.next_id(), generator.next_id()
        assert first < second < third

    def test_id_shape(self):
        delivery_id = DeliveryIdGenerator().next_id()
        assert len(delivery_id) == 24
        int(delivery_id, 16)


class TestRecordResult:

    @pytest.mark.asyncio
    async def test_stores_record_with_server_fields(self, fake_db):
        recorder = NotificationDeliveryRecorder()

        record = await recorder.record_result(fake_db, _attempt(external_user_id="ext-9"))

        assert record.channel == DeliveryChannel.PUSH
        assert record.status == DeliveryStatus.SUCCESS
        assert record.created_at.tzinfo is not None
        stored = fake_db.notification_delivery_results.docs
        assert len(stored) == 1
        assert stored[0]["_id"] == record.delivery_id
        assert stored[0]["channel"] == "push"
        assert stored[0]["status"] == "success"
        assert stored[0]["external_user_id"] == "ext-9"
        assert stored[0]["error_message"] is None

    @pytest.mark.asyncio
    async def test_accepts_model_input(self, fake_db):
        recorder = NotificationDeliveryRecorder()
        payload = DeliveryResultInput(**_attempt(channel="email", status="failure", error_message="bounced"))

        record = await recorder.record_result(fake_db, payload)

        assert record.error_message == "bounced"
        assert record.channel == DeliveryChannel.EMAIL

    @pytest.mark.asyncio
    async def test_identical_attempts_are_separate_records(self, fake_db):
        recorder = NotificationDeliveryRecorder()

        first = await recorder.record_result(fake_db, _attempt())
        second = await recorder.record_result(fake_db, _attempt())

        assert first.delivery_id != second.delivery_id
        assert first.delivery_id < second.delivery_id
        assert len(fake_db.notification_delivery_results.docs) == 2

    @pytest.mark.asyncio
    async def test_concurrent_records_get_unique_ids(self, fake_db):
        recorder = NotificationDeliveryRecorder()

        records = await asyncio.gather(
            *[recorder.record_result(fake_db, _attempt(user_id=f"user-{i}")) for i in range(25)]
        )

        ids = [r.delivery_id for r in records]
        assert len(set(ids)) == 25
        assert len(fake_db.notification_delivery_results.docs) == 25

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fields", [
        {"channel": "sms"},
        {"status": "pending"},
        {"notification_id": ""},
        {"user_id": "   "},
        {"provider": ""},
        {"unexpected": "field"},
    ])
    async def test_rejects_out_of_domain_input(self, fake_db, fields):
        recorder = NotificationDeliveryRecorder()

        with pytest.raises(InvalidArgumentError):
            await recorder.record_result(fake_db, _attempt(**fields))
        assert fake_db.notification_delivery_results.docs == []

    @pytest.mark.asyncio
    async def test_insert_failure_is_persistence_error(self):
        recorder = NotificationDeliveryRecorder()
        db = MagicMock()
        db.notification_delivery_results.insert_one = AsyncMock(side_effect=AutoReconnect("connection reset"))

        with pytest.raises(PersistenceError) as exc_info:
            await recorder.record_result(db, _attempt())
        assert exc_info.value.operation == "record_result"


class TestTrackDelivery:

    @pytest.mark.asyncio
    async def test_successful_send_records_success(self, fake_db):
        recorder = NotificationDeliveryRecorder()
        send = AsyncMock(return_value={"id": "onesignal-123"})

        record = await recorder.track_delivery(
            fake_db, send,
            notification_id="notif-1", user_id="user-1",
            channel=DeliveryChannel.PUSH, provider="onesignal",
        )

        send.assert_awaited_once()
        assert record.status == DeliveryStatus.SUCCESS
        assert record.error_message is None

    @pytest.mark.asyncio
    async def test_provider_error_records_failure(self, fake_db):
        recorder = NotificationDeliveryRecorder()
        send = AsyncMock(side_effect=RuntimeError("invalid player id"))

        record = await recorder.track_delivery(
            fake_db, send,
            notification_id="notif-1", user_id="user-1",
            channel="push", provider="onesignal", external_user_id="ext-1",
        )

        assert record.status == DeliveryStatus.FAILURE
        assert record.error_message == "invalid player id"
        stored = fake_db.notification_delivery_results.docs[0]
        assert stored["status"] == "failure"
        assert stored["external_user_id"] == "ext-1"

    @pytest.mark.asyncio
    async def test_error_without_message_uses_class_name(self, fake_db):
        recorder = NotificationDeliveryRecorder()
        send = AsyncMock(side_effect=TimeoutError())

        record = await recorder.track_delivery(
            fake_db, send,
            notification_id="notif-1", user_id="user-1",
            channel="email", provider="postmark",
        )

        assert record.error_message == "TimeoutError"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fields", [
        {"channel": "sms"},
        {"user_id": ""},
        {"provider": "  "},
    ])
    async def test_invalid_attempt_never_calls_provider(self, fake_db, fields):
        recorder = NotificationDeliveryRecorder()
        send = AsyncMock()
        attempt = {"notification_id": "notif-1", "user_id": "user-1", "channel": "push", "provider": "onesignal"}
        attempt.update(fields)

        with pytest.raises(InvalidArgumentError):
            await recorder.track_delivery(fake_db, send, **attempt)

        send.assert_not_awaited()
        assert fake_db.notification_delivery_results.docs == []
