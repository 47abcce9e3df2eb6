"""
Apparel PLM Approval Platform
Notification Service.

Turns change events into in-app ``Notification`` rows, one per recipient.

Routing:
    lifecycle     approved → china_office
                  ds → china_office, factory
                  pps → constructor, buyer
                  in_production → factory, china_office
    approvals     buyer decision → constructor, china_office
                  constructor decision → buyer, china_office

Factory recipients are limited to the model's assigned factory. Inactive
users and the actor who caused the change are never notified.
"""

import logging

from plm.models import db
from plm.models.auth import User
from plm.models.notification import Notification
from plm.models.product import ProductModel
from plm.services.events import ChangeEvent

logger = logging.getLogger(__name__)

STATUS_NOTIFICATION_RULES: dict[str, tuple[str, ...]] = {
    "draft": (),
    "under_review": (),
    "approved": ("china_office",),
    "ds": ("china_office", "factory"),
    "pps": ("constructor", "buyer"),
    "in_production": ("factory", "china_office"),
}

APPROVAL_NOTIFICATION_RULES: dict[str, tuple[str, ...]] = {
    "buyer": ("constructor", "china_office"),
    "constructor": ("buyer", "china_office"),
}

APPROVAL_LABELS = {
    "pending": "Pending",
    "approved": "Approved",
    "approved_with_comments": "Approved with comments",
    "not_approved": "Not approved",
}


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Routing ───────────────────────────────────────────────────────────

    @staticmethod
    def recipient_roles(event: ChangeEvent) -> tuple[str, ...]:
        if event.is_approval:
            return APPROVAL_NOTIFICATION_RULES.get(event.subject, ())
        return STATUS_NOTIFICATION_RULES.get(event.new_value, ())

    @staticmethod
    def recipients_for(event: ChangeEvent, model: ProductModel | None) -> list[User]:
        """Active users to notify, de-duplicated, actor excluded."""
        seen: set[int] = set()
        recipients: list[User] = []
        for role in NotificationService.recipient_roles(event):
            query = User.query.filter_by(role=role, is_active=True)
            if role == "factory":
                factory_id = model.assigned_factory_id if model else None
                if factory_id is None:
                    continue
                query = query.filter_by(factory_id=factory_id)
            for user in query.order_by(User.id.asc()).all():
                if user.id == event.actor_id or user.id in seen:
                    continue
                seen.add(user.id)
                recipients.append(user)
        return recipients

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def handle_change(event: ChangeEvent) -> list[Notification]:
        """Event subscriber: persist one notification per recipient."""
        model = db.session.get(ProductModel, event.model_id)
        recipients = NotificationService.recipients_for(event, model)
        if not recipients:
            return []

        label = model.model_number if model else f"#{event.model_id}"
        if event.is_approval:
            category = "approval"
            verdict = APPROVAL_LABELS.get(event.new_value, event.new_value)
            title = f"{event.subject.capitalize()} approval on {label}: {verdict}"
            message = event.comment or ""
        else:
            category = "lifecycle"
            title = f"Model {label} moved to {event.new_value}"
            message = f"Status changed from {event.old_value} to {event.new_value}"

        notifications = []
        try:
            for user in recipients:
                notif = Notification(
                    recipient_id=user.id,
                    model_id=event.model_id,
                    title=title,
                    message=message,
                    category=category,
                    payload=event.to_dict(),
                )
                db.session.add(notif)
                notifications.append(notif)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            "Created %d notification(s)", len(notifications),
            extra={"model_id": event.model_id, "event_type": f"{event.subject}.notify"},
        )
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id: int, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        query = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            query = query.filter_by(is_read=False)
        return (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def mark_read(notification_id: int, recipient_id: int):
        """Mark one of the recipient's notifications read; None if not theirs."""
        notif = Notification.query.filter_by(id=notification_id, recipient_id=recipient_id).first()
        if notif is None:
            return None
        notif.mark_read()
        db.session.commit()
        return notif
