"""
Tests: change events → in-app notifications.
"""

from datetime import datetime, timezone

import pytest

from plm.models.notification import Notification
from plm.services.events import ChangeEvent, EventDispatcher
from plm.services.notification import NotificationService


def _event(model_id, subject="lifecycle", old="draft", new="approved", actor_id=None, comment=None):
    return ChangeEvent(
        model_id=model_id, subject=subject, old_value=old, new_value=new,
        actor_id=actor_id, comment=comment,
        occurred_at=datetime(2026, 6, 1, tzinfo=timezone.utc),
    )


class TestDispatcher:
    def test_publish_reaches_every_subscriber(self):
        seen = []
        dispatcher = EventDispatcher()
        dispatcher.subscribe(seen.append)
        dispatcher.subscribe(lambda e: seen.append(e.new_value))
        event = _event(1)
        assert dispatcher.publish(event) == 2
        assert seen == [event, "approved"]

    def test_failing_subscriber_is_isolated(self):
        seen = []
        dispatcher = EventDispatcher()

        def _boom(event):
            raise RuntimeError("boom")

        dispatcher.subscribe(_boom)
        dispatcher.subscribe(seen.append)
        assert dispatcher.publish(_event(1)) == 1
        assert len(seen) == 1


class TestRouting:
    @pytest.mark.parametrize("status, roles", [
        ("draft", ()),
        ("under_review", ()),
        ("approved", ("china_office",)),
        ("ds", ("china_office", "factory")),
        ("pps", ("constructor", "buyer")),
        ("in_production", ("factory", "china_office")),
    ])
    def test_lifecycle_rules(self, status, roles):
        assert NotificationService.recipient_roles(_event(1, new=status)) == roles

    def test_approval_rules(self):
        assert NotificationService.recipient_roles(
            _event(1, subject="buyer", old="pending", new="approved"),
        ) == ("constructor", "china_office")
        assert NotificationService.recipient_roles(
            _event(1, subject="constructor", old="pending", new="not_approved"),
        ) == ("buyer", "china_office")

    def test_recipients_filtering(self, make_user, make_model):
        actor = make_user("china_office")
        office = make_user("china_office")
        make_user("china_office", is_active=False)
        own_factory = make_user("factory", factory_id=5)
        make_user("factory", factory_id=6)
        model = make_model(assigned_factory_id=5)

        recipients = NotificationService.recipients_for(
            _event(model.id, new="ds", actor_id=actor.id), model,
        )

        assert [u.id for u in recipients] == [office.id, own_factory.id]

    def test_unassigned_model_notifies_no_factory(self, make_user, make_model):
        make_user("factory", factory_id=5)
        model = make_model()
        assert NotificationService.recipients_for(_event(model.id, new="in_production"), model) == []


class TestEndToEnd:
    def test_status_change_notifies_routed_roles(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        constructor = make_user("constructor")
        other_buyer = make_user("buyer")
        model = make_model(model_number="PPS-1")

        client.put(f"/api/v1/models/{model.id}/status", json={"status": "pps"},
                   headers=auth_headers(buyer))

        rows = Notification.query.order_by(Notification.recipient_id).all()
        assert [n.recipient_id for n in rows] == [constructor.id, other_buyer.id]
        assert rows[0].category == "lifecycle"
        assert rows[0].title == "Model PPS-1 moved to pps"
        assert rows[0].payload["new_value"] == "pps"

    def test_approval_notification_carries_comment(self, client, make_user, make_model, auth_headers):
        constructor = make_user("constructor")
        buyer = make_user("buyer")
        model = make_model(model_number="C-1")

        client.put(f"/api/v1/models/{model.id}/approvals/constructor",
                   json={"status": "not_approved", "comment": "Seam allowance too small"},
                   headers=auth_headers(constructor))

        res = client.get("/api/v1/notifications", headers=auth_headers(buyer))
        items = res.get_json()["items"]
        assert len(items) == 1
        assert items[0]["category"] == "approval"
        assert items[0]["title"] == "Constructor approval on C-1: Not approved"
        assert items[0]["message"] == "Seam allowance too small"

    def test_mark_read(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        office = make_user("china_office")
        model = make_model()
        client.put(f"/api/v1/models/{model.id}/status", json={"status": "approved"},
                   headers=auth_headers(buyer))
        notif_id = client.get(
            "/api/v1/notifications", headers=auth_headers(office),
        ).get_json()["items"][0]["id"]

        # Not the recipient
        assert client.post(
            f"/api/v1/notifications/{notif_id}/read", headers=auth_headers(buyer),
        ).status_code == 404

        res = client.post(f"/api/v1/notifications/{notif_id}/read", headers=auth_headers(office))
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        unread = client.get("/api/v1/notifications?unread_only=true", headers=auth_headers(office))
        assert unread.get_json()["total"] == 0

    def test_requires_authentication(self, client):
        assert client.get("/api/v1/notifications").status_code == 401
