"""RecordDeliveryReceipt command + handler — provider or client acknowledgements.

A receipt moves a SENT channel to DELIVERED. Receipts for channels in any
other status (late, duplicate, or for a failed channel) are ignored.
"""

import structlog
from notifications.domain import notifications
from notifications.notification.locking import notification_lock
from notifications.notification.notification import Notification
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)


@notifications.command(part_of="Notification")
class RecordDeliveryReceipt:
    notification_id: Identifier(required=True)
    channel: String(required=True, max_length=20)
    message_id: String(max_length=200)


@notifications.command_handler(part_of=Notification)
class RecordDeliveryReceiptHandler:
    @handle(RecordDeliveryReceipt)
    def record_receipt(self, command: RecordDeliveryReceipt):
        repo = current_domain.repository_for(Notification)
        with notification_lock(command.notification_id):
            notification = repo.get(command.notification_id)
            applied = notification.confirm_delivery(command.channel)
            if applied:
                repo.add(notification)

        if not applied:
            logger.info(
                "Delivery receipt ignored",
                notification_id=str(command.notification_id),
                channel=command.channel,
                channel_status=notification.delivery_for(command.channel).status,
                message_id=command.message_id,
            )
        return applied
