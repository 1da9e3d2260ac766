"""Producer-facing notification queue."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from src.models.enums import NotificationStatus, NotificationType
from src.models.notification_queue import NotificationQueueItem
from src.schemas.notification import NotificationIntent
from src.services.badges import CATEGORY_FOR_TYPE, BadgeAggregator
from src.services.eligibility import EligibilityResolver, SuppressionReason

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100
MESSAGE_REPLY_CATEGORY = "MESSAGE_REPLY"


@dataclass(frozen=True)
class QueueResult:
    """Whether an intent was queued, and if not, why."""

    queued: bool
    notification_id: int | None = None
    reason: SuppressionReason | None = None


class NotificationQueue:
    """Persists eligible notification intents for the delivery worker."""

    def __init__(self, db: Session, resolver: EligibilityResolver | None = None):
        self.db = db
        self.resolver = resolver or EligibilityResolver(db)
        self.badges = BadgeAggregator(db)

    def queue_notification(
        self, intent: NotificationIntent, now: datetime | None = None
    ) -> QueueResult:
        """Queue a notification if the user should receive it.

        Suppressed intents are not persisted. No network I/O happens here;
        the delivery worker picks the row up on its next poll.
        """
        now = now or datetime.now(UTC)
        decision = self.resolver.evaluate(
            intent.user_id,
            intent.workspace_id,
            intent.thread_id,
            intent.notification_type,
            now=now,
        )
        if not decision.allowed:
            logger.info(
                f"Skipping {intent.notification_type.value} notification for user "
                f"{intent.user_id} ({decision.reason})"
            )
            return QueueResult(queued=False, reason=decision.reason)

        try:
            category = CATEGORY_FOR_TYPE.get(intent.notification_type)
            if category is not None:
                self.badges.adjust(
                    intent.user_id, intent.workspace_id, 1, category=category, commit=False
                )
            badge_count = self.badges.total(intent.user_id)

            item = NotificationQueueItem(
                user_id=intent.user_id,
                workspace_id=intent.workspace_id,
                thread_id=intent.thread_id,
                message_id=intent.message_id,
                notification_type=intent.notification_type,
                title=intent.title,
                body=intent.body,
                data=intent.data,
                badge_count=badge_count,
                category=intent.category,
                priority=intent.priority,
                status=NotificationStatus.PENDING,
                retry_count=0,
                scheduled_for=now,
            )
            self.db.add(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to queue notification for user {intent.user_id}", exc_info=True)
            raise

        logger.info(
            f"Queued {intent.notification_type.value} notification {item.id} "
            f"for user {intent.user_id}"
        )
        return QueueResult(queued=True, notification_id=item.id)

    # Convenience producers for common events

    def notify_mention(
        self,
        user_id: int,
        workspace_id: int,
        thread_id: int,
        message_id: int,
        sender_name: str,
        channel_name: str,
        message_preview: str,
    ) -> QueueResult:
        return self.queue_notification(
            NotificationIntent(
                user_id=user_id,
                workspace_id=workspace_id,
                thread_id=thread_id,
                message_id=message_id,
                notification_type=NotificationType.MENTION,
                title=f"{sender_name} mentioned you",
                body=f"in #{channel_name}: {message_preview[:PREVIEW_LENGTH]}",
                data={"senderName": sender_name, "channelName": channel_name},
                category=MESSAGE_REPLY_CATEGORY,
            )
        )

    def notify_direct_message(
        self,
        user_id: int,
        workspace_id: int,
        thread_id: int,
        message_id: int,
        sender_name: str,
        message_preview: str,
    ) -> QueueResult:
        return self.queue_notification(
            NotificationIntent(
                user_id=user_id,
                workspace_id=workspace_id,
                thread_id=thread_id,
                message_id=message_id,
                notification_type=NotificationType.DIRECT_MESSAGE,
                title=sender_name,
                body=message_preview[:PREVIEW_LENGTH],
                data={"senderName": sender_name},
                category=MESSAGE_REPLY_CATEGORY,
            )
        )

    def notify_thread_reply(
        self,
        user_id: int,
        workspace_id: int,
        thread_id: int,
        message_id: int,
        sender_name: str,
        channel_name: str,
        message_preview: str,
    ) -> QueueResult:
        return self.queue_notification(
            NotificationIntent(
                user_id=user_id,
                workspace_id=workspace_id,
                thread_id=thread_id,
                message_id=message_id,
                notification_type=NotificationType.THREAD_REPLY,
                title=f"{sender_name} replied",
                body=f"in #{channel_name}: {message_preview[:PREVIEW_LENGTH]}",
                data={"senderName": sender_name, "channelName": channel_name},
                category=MESSAGE_REPLY_CATEGORY,
            )
        )

    def notify_task_assigned(
        self,
        user_id: int,
        workspace_id: int,
        task_id: int,
        assigner_name: str,
        task_title: str,
    ) -> QueueResult:
        return self.queue_notification(
            NotificationIntent(
                user_id=user_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.TASK_ASSIGNED,
                title="New task assigned",
                body=f"{assigner_name} assigned you: {task_title}",
                data={"taskId": task_id, "assignerName": assigner_name, "taskTitle": task_title},
            )
        )

    def notify_task_due(
        self,
        user_id: int,
        workspace_id: int,
        task_id: int,
        task_title: str,
        due_date: datetime,
    ) -> QueueResult:
        return self.queue_notification(
            NotificationIntent(
                user_id=user_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.TASK_DUE,
                title="Task due soon",
                body=task_title,
                data={"taskId": task_id, "taskTitle": task_title, "dueDate": due_date.isoformat()},
            )
        )

    def notify_task_completed(
        self,
        user_id: int,
        workspace_id: int,
        task_id: int,
        completer_name: str,
        task_title: str,
    ) -> QueueResult:
        return self.queue_notification(
            NotificationIntent(
                user_id=user_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.TASK_COMPLETED,
                title="Task completed",
                body=f"{completer_name} completed: {task_title}",
                data={"taskId": task_id, "completerName": completer_name, "taskTitle": task_title},
                priority="normal",
            )
        )

    def notify_workspace_invite(
        self,
        user_id: int,
        workspace_id: int,
        workspace_name: str,
        inviter_name: str,
    ) -> QueueResult:
        return self.queue_notification(
            NotificationIntent(
                user_id=user_id,
                workspace_id=workspace_id,
                notification_type=NotificationType.WORKSPACE_INVITE,
                title="Workspace invitation",
                body=f"{inviter_name} invited you to {workspace_name}",
                data={"workspaceName": workspace_name, "inviterName": inviter_name},
            )
        )
