"""
Tests: /api/v1/models — CRUD, lifecycle status and approval endpoints.
"""

import pytest

from plm.models import db as _db
from plm.models.product import ApprovalTrack, ModelLifecycle, ProductModel
from plm.services.events import current_dispatcher


# ── CRUD ──────────────────────────────────────────────────────────────────────


class TestCreateModel:
    def test_creates_draft_with_two_pending_tracks(self, client, make_user, auth_headers):
        designer = make_user("designer")
        res = client.post(
            "/api/v1/models",
            json={"model_number": "SS26-001", "model_name": "Linen Shirt", "product_type": "textile"},
            headers=auth_headers(designer),
        )

        assert res.status_code == 201
        body = res.get_json()
        assert body["model_number"] == "SS26-001"
        assert body["designer_id"] == designer.id
        assert body["lifecycle"]["status"] == "draft"
        assert {t: a["status"] for t, a in body["approvals"].items()} == {
            "buyer": "pending",
            "constructor": "pending",
        }

    def test_model_number_required(self, client, make_user, auth_headers):
        designer = make_user("designer")
        res = client.post("/api/v1/models", json={}, headers=auth_headers(designer))
        assert res.status_code == 400

    def test_duplicate_model_number(self, client, make_user, make_model, auth_headers):
        designer = make_user("designer")
        make_model(model_number="DUP-1")
        res = client.post(
            "/api/v1/models", json={"model_number": "DUP-1"}, headers=auth_headers(designer),
        )
        assert res.status_code == 400

    def test_invalid_product_type(self, client, make_user, auth_headers):
        designer = make_user("designer")
        res = client.post(
            "/api/v1/models", json={"model_number": "X-1", "product_type": "shoes"},
            headers=auth_headers(designer),
        )
        assert res.status_code == 400
        assert res.get_json()["details"] == {"product_type": "shoes"}

    def test_requires_create_models(self, client, make_user, auth_headers):
        constructor = make_user("constructor")
        res = client.post(
            "/api/v1/models", json={"model_number": "X-1"}, headers=auth_headers(constructor),
        )
        assert res.status_code == 403
        assert ProductModel.query.count() == 0


class TestReadModels:
    def test_list_and_filter_by_status(self, client, make_user, make_model, auth_headers):
        designer = make_user("designer")
        make_model(model_number="A", status="draft")
        make_model(model_number="B", status="pps")

        res = client.get("/api/v1/models", headers=auth_headers(designer))
        assert res.get_json()["total"] == 2

        res = client.get("/api/v1/models?status=pps_stage", headers=auth_headers(designer))
        assert [m["model_number"] for m in res.get_json()["items"]] == ["B"]

    def test_invalid_status_filter(self, client, make_user, auth_headers):
        designer = make_user("designer")
        res = client.get("/api/v1/models?status=shipped", headers=auth_headers(designer))
        assert res.status_code == 400

    def test_factory_sees_only_its_approved_models(self, client, make_user, make_model, auth_headers):
        factory = make_user("factory", factory_id=10)
        make_model(model_number="MINE-DRAFT", status="draft", assigned_factory_id=10)
        make_model(model_number="MINE-DS", status="ds", assigned_factory_id=10)
        make_model(model_number="OTHER-DS", status="ds", assigned_factory_id=11)

        res = client.get("/api/v1/models", headers=auth_headers(factory))
        assert [m["model_number"] for m in res.get_json()["items"]] == ["MINE-DS"]

    def test_hidden_model_is_not_found_for_factory(self, client, make_user, make_model, auth_headers):
        factory = make_user("factory", factory_id=10)
        model = make_model(status="under_review", assigned_factory_id=10)
        res = client.get(f"/api/v1/models/{model.id}", headers=auth_headers(factory))
        assert res.status_code == 404

    def test_detail_includes_approval_summary(self, client, make_user, make_model, auth_headers):
        designer = make_user("designer")
        model = make_model()
        body = client.get(f"/api/v1/models/{model.id}", headers=auth_headers(designer)).get_json()
        assert body["approval_summary"]["fully_approved"] is False

    def test_view_models_can_be_revoked(self, client, make_user, make_model, auth_headers, gate):
        designer = make_user("designer")
        gate.store.set_overrides(designer.id, {"can_view_models": False})
        _db.session.commit()
        res = client.get("/api/v1/models", headers=auth_headers(designer))
        assert res.status_code == 403


class TestDeleteModel:
    def test_delete_cascades_to_workflow_rows(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        model = make_model()
        model_id = model.id

        res = client.delete(f"/api/v1/models/{model_id}", headers=auth_headers(buyer))

        assert res.status_code == 200
        assert _db.session.get(ProductModel, model_id) is None
        assert ModelLifecycle.query.filter_by(model_id=model_id).count() == 0
        assert ApprovalTrack.query.filter_by(model_id=model_id).count() == 0

    def test_delete_missing(self, client, make_user, auth_headers):
        buyer = make_user("buyer")
        assert client.delete("/api/v1/models/31337", headers=auth_headers(buyer)).status_code == 404

    def test_designer_cannot_delete_by_default(self, client, make_user, make_model, auth_headers):
        designer = make_user("designer")
        model = make_model()
        res = client.delete(f"/api/v1/models/{model.id}", headers=auth_headers(designer))
        assert res.status_code == 403
        assert res.get_json()["details"]["required"] == "can_delete_models"


# ── Lifecycle status ──────────────────────────────────────────────────────────


class TestStatusEndpoint:
    def test_returns_lifecycle_and_event(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        model = make_model()
        res = client.put(
            f"/api/v1/models/{model.id}/status", json={"status": "under_review"},
            headers=auth_headers(buyer),
        )

        assert res.status_code == 200
        body = res.get_json()
        assert body["lifecycle"]["status"] == "under_review"
        assert body["lifecycle"]["changed_by"] == buyer.id
        event = body["event"]
        assert event["model_id"] == model.id
        assert event["subject"] == "lifecycle"
        assert (event["old_value"], event["new_value"]) == ("draft", "under_review")
        assert event["actor_id"] == buyer.id
        assert "comment" not in event

    @pytest.mark.parametrize("payload", [{"status": "finished"}, {}, {"status": 5}])
    def test_invalid_status_is_400(self, client, make_user, make_model, auth_headers, payload):
        buyer = make_user("buyer")
        model = make_model()
        res = client.put(
            f"/api/v1/models/{model.id}/status", json=payload, headers=auth_headers(buyer),
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_forbidden_for_designer(self, client, make_user, make_model, auth_headers):
        designer = make_user("designer")
        model = make_model()
        res = client.put(
            f"/api/v1/models/{model.id}/status", json={"status": "approved"},
            headers=auth_headers(designer),
        )
        assert res.status_code == 403

    def test_missing_model(self, client, make_user, auth_headers):
        buyer = make_user("buyer")
        res = client.put(
            "/api/v1/models/999/status", json={"status": "approved"}, headers=auth_headers(buyer),
        )
        assert res.status_code == 404

    def test_unauthenticated(self, client, make_model):
        model = make_model()
        res = client.put(f"/api/v1/models/{model.id}/status", json={"status": "approved"})
        assert res.status_code == 401

    def test_failing_subscriber_does_not_undo_change(
        self, client, make_user, make_model, auth_headers, monkeypatch,
    ):
        dispatcher = current_dispatcher()

        def _boom(event):
            raise RuntimeError("mail server down")

        monkeypatch.setattr(dispatcher, "_subscribers", [_boom] + dispatcher._subscribers)
        buyer = make_user("buyer")
        model = make_model()

        res = client.put(
            f"/api/v1/models/{model.id}/status", json={"status": "approved"},
            headers=auth_headers(buyer),
        )

        assert res.status_code == 200
        _db.session.expire_all()
        assert ModelLifecycle.query.filter_by(model_id=model.id).one().status == "approved"


# ── Approvals ─────────────────────────────────────────────────────────────────


class TestApprovalEndpoint:
    def test_buyer_decision(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        model = make_model()
        res = client.put(
            f"/api/v1/models/{model.id}/approvals/buyer",
            json={"status": "approved_with_comments", "comment": "Lower the neckline"},
            headers=auth_headers(buyer),
        )

        assert res.status_code == 200
        body = res.get_json()
        assert body["approval"]["status"] == "approved_with_comments"
        assert body["approval"]["comment"] == "Lower the neckline"
        assert body["approval"]["decided_by"] == buyer.id
        assert body["event"] == {
            "model_id": model.id,
            "subject": "buyer",
            "old_value": "pending",
            "new_value": "approved_with_comments",
            "actor_id": buyer.id,
            "comment": "Lower the neckline",
            "occurred_at": body["event"]["occurred_at"],
        }

    def test_constructor_lane_forbidden_for_buyer(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        model = make_model()
        res = client.put(
            f"/api/v1/models/{model.id}/approvals/constructor", json={"status": "approved"},
            headers=auth_headers(buyer),
        )
        assert res.status_code == 403
        assert res.get_json()["details"]["required"] == "can_approve_as_constructor"

    def test_override_grants_lane(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        model = make_model()
        client.put(
            f"/api/v1/users/{buyer.id}/permissions", json={"can_approve_as_constructor": True},
            headers=auth_headers(buyer),
        )
        res = client.put(
            f"/api/v1/models/{model.id}/approvals/constructor", json={"status": "not_approved"},
            headers=auth_headers(buyer),
        )
        assert res.status_code == 200

    def test_pending_is_not_a_decision(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        model = make_model()
        res = client.put(
            f"/api/v1/models/{model.id}/approvals/buyer", json={"status": "pending"},
            headers=auth_headers(buyer),
        )
        assert res.status_code == 400

    def test_unknown_track(self, client, make_user, make_model, auth_headers):
        buyer = make_user("buyer")
        model = make_model()
        res = client.put(
            f"/api/v1/models/{model.id}/approvals/qa", json={"status": "approved"},
            headers=auth_headers(buyer),
        )
        assert res.status_code == 400

    def test_get_lane(self, client, make_user, make_model, auth_headers):
        constructor = make_user("constructor")
        model = make_model()
        res = client.get(
            f"/api/v1/models/{model.id}/approvals/constructor", headers=auth_headers(constructor),
        )
        assert res.status_code == 200
        assert res.get_json()["status"] == "pending"


# ── History ───────────────────────────────────────────────────────────────────


def test_history_lists_lifecycle_and_approvals_in_order(client, make_user, auth_headers):
    designer, buyer, constructor = make_user("designer"), make_user("buyer"), make_user("constructor")
    model_id = client.post(
        "/api/v1/models", json={"model_number": "H-1"}, headers=auth_headers(designer),
    ).get_json()["id"]
    client.put(f"/api/v1/models/{model_id}/status", json={"status": "under_review"},
               headers=auth_headers(buyer))
    client.put(f"/api/v1/models/{model_id}/approvals/constructor", json={"status": "approved"},
               headers=auth_headers(constructor))

    res = client.get(f"/api/v1/models/{model_id}/history", headers=auth_headers(designer))

    assert res.status_code == 200
    assert [h["action"] for h in res.get_json()["history"]] == [
        "model.create",
        "model.status_change",
        "approval.constructor.decide",
    ]
