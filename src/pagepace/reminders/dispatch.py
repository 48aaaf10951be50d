"""Batch delivery of daily reading reminders."""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Optional

from ..db.interfaces import ReminderStorage
from ..errors import TransportFailure
from .matcher import DEFAULT_WINDOW_MINUTES, build_reminder_payload, select_due_users
from .schemas import DeliveryResult, DispatchReport, PushPayload
from .transport import PushTransport

logger = logging.getLogger(__name__)


class ReminderDispatcher:
    """Sends reminders to every user whose reminder time matches now.

    One run is stateless: running it again inside the same window sends
    the reminders again.
    """

    def __init__(
        self,
        storage: ReminderStorage,
        transport: PushTransport,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        tz: tzinfo = timezone.utc,
    ):
        """Initialize the dispatcher.

        Args:
            storage: Source of preferences, subscriptions and current books
            transport: Push transport used for every delivery
            window_minutes: Match tolerance around each reminder time
            tz: Reference timezone reminder times are read in
        """
        self.storage = storage
        self.transport = transport
        self.window_minutes = window_minutes
        self.tz = tz

    def run(self, now: Optional[datetime] = None) -> DispatchReport:
        """Run one reminder batch.

        Failures for a single user or subscription are recorded in the
        report and do not stop the batch. A failure to read the
        preferences themselves propagates.
        """
        now = now or datetime.now(timezone.utc)
        preferences = self.storage.get_reminder_preferences(enabled_only=True)
        logger.info(f"Found {len(preferences)} users with daily reminders enabled")

        report = DispatchReport()
        report.matched_users = select_due_users(now, preferences, self.window_minutes, self.tz)

        for user_id in report.matched_users:
            try:
                subscriptions = self.storage.get_push_subscriptions(user_id)
                book = self.storage.get_currently_reading_book(user_id)
            except Exception as e:
                logger.error(f"Could not prepare reminder for {user_id}: {e}")
                report.failed_count += 1
                report.failures.append((user_id, str(e)))
                continue

            payload = build_reminder_payload(book)
            for subscription in subscriptions:
                report.record(self._deliver(subscription, payload))

        logger.info(
            f"Sent {report.sent_count} reminder notifications "
            f"({report.failed_count} failed, {len(report.matched_users)} users due)"
        )
        return report

    def send_to_user(self, user_id: str, payload: PushPayload) -> DispatchReport:
        """Deliver a payload to every subscription of one user."""
        report = DispatchReport(matched_users=[user_id])
        for subscription in self.storage.get_push_subscriptions(user_id):
            report.record(self._deliver(subscription, payload))

        logger.info(f"Sent {report.sent_count} notifications to user {user_id}")
        return report

    def _deliver(self, subscription, payload: PushPayload) -> DeliveryResult:
        try:
            return self.transport.deliver(subscription, payload)
        except TransportFailure as e:
            logger.error(str(e))
            return DeliveryResult(
                endpoint=subscription.endpoint,
                ok=False,
                status_code=e.status_code,
                error=e.reason,
            )
