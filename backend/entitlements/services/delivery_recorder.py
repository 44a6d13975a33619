"""
Notification Delivery Recorder.
Append-only audit trail of email/push delivery attempts in
notification_delivery_results. There is no update or delete path; reads and
reporting belong to the admin tooling.
"""
from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from entitlements.exceptions import InvalidArgumentError, PersistenceError
from entitlements.models.delivery import (
    DeliveryChannel,
    DeliveryResult,
    DeliveryResultInput,
    DeliveryStatus,
)

logger = logging.getLogger(__name__)


class DeliveryIdGenerator:
    """Time-ordered ids: 16 hex digits of microseconds + 8 random hex digits.

    Ids from one generator are strictly increasing even within the same
    microsecond; the random suffix keeps separate processes apart.
    """

    def __init__(self, clock: Callable[[], int] = time.time_ns):
        self._clock = clock
        self._last = 0

    def next_id(self) -> str:
        micros = self._clock() // 1000
        if micros <= self._last:
            micros = self._last + 1
        self._last = micros
        return f"{micros:016x}{secrets.token_hex(4)}"


def _to_input(result: Union[DeliveryResultInput, Dict[str, Any]]) -> DeliveryResultInput:
    if isinstance(result, DeliveryResultInput):
        return result
    try:
        return DeliveryResultInput.model_validate(result)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "input"
        raise InvalidArgumentError(field, first.get("msg", "invalid value")) from e


class NotificationDeliveryRecorder:
    """Writes one immutable record per delivery attempt."""

    def __init__(self, id_generator: Optional[DeliveryIdGenerator] = None):
        self._ids = id_generator or DeliveryIdGenerator()

    async def record_result(
        self,
        db,
        result: Union[DeliveryResultInput, Dict[str, Any]],
    ) -> DeliveryResult:
        """
        Validate and insert a delivery attempt with a fresh id and server timestamp.
        Raises InvalidArgumentError for out-of-domain input and PersistenceError
        if the insert fails; the caller owns any retry.
        """
        payload = _to_input(result)
        delivery_id = self._ids.next_id()
        record = DeliveryResult(
            **payload.model_dump(),
            delivery_id=delivery_id,
            created_at=datetime.now(timezone.utc),
        )

        doc = record.model_dump(mode="python")
        doc["channel"] = record.channel.value
        doc["status"] = record.status.value
        doc["_id"] = delivery_id

        try:
            await db.notification_delivery_results.insert_one(doc)
        except PyMongoError as e:
            logger.error(
                f"Failed to record delivery result notification={record.notification_id} "
                f"user={record.user_id} channel={record.channel.value}: {e}",
                exc_info=True,
            )
            raise PersistenceError("record_result", e) from e

        return record

    async def track_delivery(
        self,
        db,
        send: Callable[[], Awaitable[Any]],
        *,
        notification_id: str,
        user_id: str,
        channel: Union[DeliveryChannel, str],
        provider: str,
        external_user_id: Optional[str] = None,
    ) -> DeliveryResult:
        """Run a provider send and record its outcome.

        The attempt is validated before the provider is called, so an
        out-of-domain channel or id never reaches the provider. A provider
        exception becomes a failure record carrying the error text and is
        logged; the record is returned so the caller can mark the batch for
        retry.
        """
        attempt = _to_input({
            "notification_id": notification_id,
            "user_id": user_id,
            "channel": channel,
            "provider": provider,
            "status": DeliveryStatus.SUCCESS,
            "external_user_id": external_user_id,
        })

        status = DeliveryStatus.SUCCESS
        error_message = None
        try:
            await send()
        except Exception as e:
            status = DeliveryStatus.FAILURE
            error_message = str(e) or e.__class__.__name__
            logger.warning(
                f"Failed to send {attempt.channel.value} notification "
                f"{attempt.notification_id} to {attempt.user_id} via {attempt.provider}: {error_message}"
            )

        return await self.record_result(
            db, attempt.model_copy(update={"status": status, "error_message": error_message})
        )


notification_delivery_recorder = NotificationDeliveryRecorder()
