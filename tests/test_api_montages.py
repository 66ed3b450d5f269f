"""
Montage API tests — CRUD, status changes, checklist writes, read models.
"""

import io

ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
OFFICE_HEADERS = {"X-User-Id": "office-1", "X-User-Role": "office"}
INSTALLER_HEADERS = {"X-User-Id": "installer-1", "X-User-Role": "installer"}


def _create(client, **fields):
    payload = {"client_name": "Anna Nowak", "installer_id": "installer-1", **fields}
    res = client.post("/api/v1/montages", json=payload, headers=OFFICE_HEADERS)
    assert res.status_code == 201
    return res.get_json()


def _item(body, template_id):
    return next(i for i in body["checklist_items"] if i["template_id"] == template_id)


def _move(client, montage_id, status, **extra):
    return client.post(
        f"/api/v1/montages/{montage_id}/status",
        json={"status": status, **extra}, headers=OFFICE_HEADERS,
    )


class TestMontageCrud:
    def test_create_starts_at_lead_with_checklist(self, client):
        body = _create(client)
        assert body["status"] == "lead"
        assert body["display_id"].startswith("M/")
        assert len(body["checklist_items"]) == 10
        assert body["updated_at"]

    def test_create_without_checklist(self, client):
        body = _create(client, initialize_checklist=False)
        assert body["checklist_items"] == []

    def test_status_in_create_is_ignored(self, client):
        assert _create(client, status="completed")["status"] == "lead"

    def test_create_requires_client_name(self, client):
        res = client.post("/api/v1/montages", json={"client_name": " "}, headers=OFFICE_HEADERS)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_display_ids_increment(self, client):
        first = _create(client)["display_id"]
        second = _create(client)["display_id"]
        assert int(second.rsplit("/", 1)[1]) == int(first.rsplit("/", 1)[1]) + 1

    def test_get_missing(self, client):
        res = client.get("/api/v1/montages/nope", headers=OFFICE_HEADERS)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_filters(self, client):
        _create(client, client_name="Alpha")
        beta = _create(client, client_name="Beta", installer_id="installer-2")
        _move(client, beta["id"], "cancelled")

        res = client.get("/api/v1/montages?q=alp", headers=OFFICE_HEADERS)
        assert [m["client_name"] for m in res.get_json()["items"]] == ["Alpha"]

        res = client.get("/api/v1/montages?archived=true", headers=OFFICE_HEADERS)
        assert [m["id"] for m in res.get_json()["items"]] == [beta["id"]]

        res = client.get("/api/v1/montages?installer_id=installer-2&include_checklist=false",
                         headers=OFFICE_HEADERS)
        items = res.get_json()["items"]
        assert len(items) == 1
        assert "checklist_items" not in items[0]

    def test_update_details(self, client):
        body = _create(client)
        res = client.patch(
            f"/api/v1/montages/{body['id']}",
            json={"contact_phone": "600 100 200", "measurement_date": "2026-05-04"},
            headers=OFFICE_HEADERS,
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["contact_phone"] == "600 100 200"
        assert data["measurement_date"].startswith("2026-05-04")
        assert data["updated_at"] != body["updated_at"]

    def test_update_rejects_status(self, client):
        body = _create(client)
        res = client.patch(f"/api/v1/montages/{body['id']}", json={"status": "completed"},
                           headers=OFFICE_HEADERS)
        assert res.status_code == 422

    def test_update_rejects_bad_date(self, client):
        body = _create(client)
        res = client.patch(f"/api/v1/montages/{body['id']}", json={"measurement_date": "soon"},
                           headers=OFFICE_HEADERS)
        assert res.status_code == 422

    def test_stale_update_conflicts(self, client):
        body = _create(client)
        client.patch(f"/api/v1/montages/{body['id']}", json={"contact_phone": "1"}, headers=OFFICE_HEADERS)

        res = client.patch(
            f"/api/v1/montages/{body['id']}",
            json={"contact_phone": "2", "expected_updated_at": body["updated_at"]},
            headers=OFFICE_HEADERS,
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"


class TestStatusEndpoint:
    def test_manual_move(self, client):
        body = _create(client)
        res = _move(client, body["id"], "before_installation")
        assert res.status_code == 200
        assert res.get_json()["status"] == "before_installation"

    def test_status_required(self, client):
        body = _create(client)
        res = client.post(f"/api/v1/montages/{body['id']}/status", json={}, headers=OFFICE_HEADERS)
        assert res.status_code == 422

    def test_unknown_status(self, client):
        body = _create(client)
        res = _move(client, body["id"], "measurement_scheduled")
        assert res.status_code == 400
        data = res.get_json()
        assert data["code"] == "ERR_UNKNOWN_STATUS"
        assert data["details"] == {"status": "measurement_scheduled"}

    def test_lead_guard(self, client):
        body = _create(client, installer_id="")
        res = _move(client, body["id"], "before_measurement")
        assert res.status_code == 409
        data = res.get_json()
        assert data["code"] == "ERR_POLICY_VIOLATION"
        assert data["details"]["policy"] == "requireInstallerForMeasurement"

    def test_terminal_is_absorbing(self, client):
        body = _create(client)
        _move(client, body["id"], "completed")
        res = _move(client, body["id"], "lead")
        assert res.status_code == 409
        assert res.get_json()["details"]["policy"] == "terminal_status"

    def test_stale_move(self, client):
        body = _create(client)
        _move(client, body["id"], "before_measurement")
        res = _move(client, body["id"], "cancelled", expected_updated_at=body["updated_at"])
        assert res.status_code == 409

    def test_move_creates_notification(self, client):
        body = _create(client)
        _move(client, body["id"], "before_measurement")
        res = client.get(f"/api/v1/montages/{body['id']}/notifications", headers=OFFICE_HEADERS)
        data = res.get_json()
        assert data["total"] == 1
        assert data["items"][0]["to_status"] == "before_measurement"


class TestNotificationEndpoints:
    def _notified(self, client):
        body = _create(client)
        _move(client, body["id"], "before_measurement")
        _move(client, body["id"], "before_first_payment")
        return body["id"]

    def _list(self, client, montage_id, query=""):
        return client.get(f"/api/v1/montages/{montage_id}/notifications{query}", headers=OFFICE_HEADERS).get_json()

    def test_mark_one_read(self, client):
        montage_id = self._notified(client)
        newest = self._list(client, montage_id)["items"][0]

        res = client.post(f"/api/v1/montages/{montage_id}/notifications/{newest['id']}/read",
                          headers=OFFICE_HEADERS)

        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        assert res.get_json()["read_at"]
        assert self._list(client, montage_id, "?unread=true")["total"] == 1

    def test_mark_read_of_other_montage_is_not_found(self, client):
        montage_id = self._notified(client)
        other = _create(client)
        notif_id = self._list(client, montage_id)["items"][0]["id"]

        res = client.post(f"/api/v1/montages/{other['id']}/notifications/{notif_id}/read",
                          headers=OFFICE_HEADERS)

        assert res.status_code == 404
        assert self._list(client, montage_id, "?unread=true")["total"] == 2

    def test_mark_all_read(self, client):
        montage_id = self._notified(client)

        res = client.post(f"/api/v1/montages/{montage_id}/notifications/read-all", headers=OFFICE_HEADERS)

        assert res.get_json() == {"updated": 2}
        assert self._list(client, montage_id, "?unread=true")["total"] == 0

    def test_unknown_montage(self, client):
        res = client.post("/api/v1/montages/missing/notifications/read-all", headers=OFFICE_HEADERS)
        assert res.status_code == 404


class TestChecklistEndpoints:
    def test_toggle_advances(self, client):
        body = _create(client)
        item = _item(body, "lead_contact")

        res = client.patch(f"/api/v1/montages/{body['id']}/checklist/{item['id']}",
                           json={"completed": True}, headers=INSTALLER_HEADERS)

        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "before_measurement"
        assert data["automation"]["action"] == "advance"
        assert data["automation"]["applied"] is True

    def test_toggle_blocked_by_policy_keeps_item(self, client):
        body = _create(client, installer_id=None)
        item = _item(body, "lead_contact")

        res = client.patch(f"/api/v1/montages/{body['id']}/checklist/{item['id']}",
                           json={"completed": True}, headers=OFFICE_HEADERS)

        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "lead"
        assert _item(data, "lead_contact")["completed"] is True
        assert data["automation"]["applied"] is False
        assert data["automation"]["error"]

    def test_completed_must_be_bool(self, client):
        body = _create(client)
        item = _item(body, "lead_contact")
        res = client.patch(f"/api/v1/montages/{body['id']}/checklist/{item['id']}",
                           json={"completed": "yes", "label": "New"}, headers=OFFICE_HEADERS)
        assert res.status_code == 422
        refreshed = client.get(f"/api/v1/montages/{body['id']}", headers=OFFICE_HEADERS).get_json()
        assert _item(refreshed, "lead_contact")["label"] == item["label"]

    def test_empty_patch(self, client):
        body = _create(client)
        item = _item(body, "lead_contact")
        res = client.patch(f"/api/v1/montages/{body['id']}/checklist/{item['id']}",
                           json={}, headers=OFFICE_HEADERS)
        assert res.status_code == 422

    def test_rename(self, client):
        body = _create(client)
        item = _item(body, "labor_cost_estimate")
        res = client.patch(f"/api/v1/montages/{body['id']}/checklist/{item['id']}",
                           json={"label": "Labour estimate"}, headers=OFFICE_HEADERS)
        data = res.get_json()
        assert _item(data, "labor_cost_estimate")["label"] == "Labour estimate"
        assert data["automation"] is None

    def test_unknown_item(self, client):
        body = _create(client)
        res = client.patch(f"/api/v1/montages/{body['id']}/checklist/missing",
                           json={"completed": True}, headers=OFFICE_HEADERS)
        assert res.status_code == 404

    def test_add_custom_item(self, client):
        body = _create(client)
        res = client.post(f"/api/v1/montages/{body['id']}/checklist",
                          json={"label": "Check wall anchors"}, headers=INSTALLER_HEADERS)
        assert res.status_code == 201
        items = res.get_json()["checklist_items"]
        assert items[-1]["label"] == "Check wall anchors"
        assert items[-1]["template_id"] == "custom"
        assert items[-1]["order_index"] == 10

    def test_delete_requires_admin(self, client):
        body = _create(client)
        item = _item(body, "labor_cost_estimate")
        url = f"/api/v1/montages/{body['id']}/checklist/{item['id']}"

        assert client.delete(url, headers=OFFICE_HEADERS).status_code == 403
        res = client.delete(url, headers=ADMIN_HEADERS)
        assert res.status_code == 200
        assert len(res.get_json()["checklist_items"]) == 9

    def test_init_is_idempotent(self, client):
        body = _create(client)
        res = client.post(f"/api/v1/montages/{body['id']}/checklist/init", headers=OFFICE_HEADERS)
        assert [i["id"] for i in res.get_json()["checklist_items"]] == [i["id"] for i in body["checklist_items"]]

    def test_init_fills_empty_checklist(self, client):
        body = _create(client, initialize_checklist=False)
        res = client.post(f"/api/v1/montages/{body['id']}/checklist/init", headers=OFFICE_HEADERS)
        assert len(res.get_json()["checklist_items"]) == 10


class TestAttachments:
    def _upload(self, client, montage_id, item_id, content=b"%PDF-1.4 test", name="protocol.pdf"):
        return client.post(
            f"/api/v1/montages/{montage_id}/checklist/{item_id}/attachment",
            data={"file": (io.BytesIO(content), name)},
            content_type="multipart/form-data",
            headers=INSTALLER_HEADERS,
        )

    def test_upload(self, client):
        body = _create(client)
        item = _item(body, "measurement_done")

        res = self._upload(client, body["id"], item["id"])

        assert res.status_code == 201
        ref = res.get_json()["attachment_ref"]
        assert ref.startswith("/uploads/montages/")
        assert ref.endswith("protocol.pdf")
        assert client.get(ref).status_code == 200

    def test_item_without_attachments(self, client):
        body = _create(client)
        item = _item(body, "labor_cost_estimate")
        assert self._upload(client, body["id"], item["id"]).status_code == 422

    def test_empty_file(self, client):
        body = _create(client)
        item = _item(body, "measurement_done")
        assert self._upload(client, body["id"], item["id"], content=b"").status_code == 422

    def test_too_large(self, client, app):
        body = _create(client)
        item = _item(body, "measurement_done")
        limit = app.config["MAX_ATTACHMENT_SIZE_BYTES"]
        app.config["MAX_ATTACHMENT_SIZE_BYTES"] = 8
        try:
            res = self._upload(client, body["id"], item["id"], content=b"0123456789")
        finally:
            app.config["MAX_ATTACHMENT_SIZE_BYTES"] = limit
        assert res.status_code == 422


class TestReadModels:
    def test_process_state(self, client):
        body = _create(client)
        _move(client, body["id"], "before_first_payment")

        res = client.get(f"/api/v1/montages/{body['id']}/process", headers=OFFICE_HEADERS)

        data = res.get_json()
        states = {s["id"]: s["state"] for s in data["stages"]}
        assert states["lead"] == "done"
        assert states["before_first_payment"] == "current"
        assert states["before_final_invoice"] == "locked"
        assert data["progress"] == {"completed": 0, "total": 10}

    def test_cancelled_process_keeps_reached_stages(self, client):
        body = _create(client)
        _move(client, body["id"], "before_installation")
        _move(client, body["id"], "cancelled")

        data = client.get(f"/api/v1/montages/{body['id']}/process", headers=OFFICE_HEADERS).get_json()

        states = {s["id"]: s["state"] for s in data["stages"]}
        assert data["is_terminal"] is True
        assert states["before_first_payment"] == "done"
        assert states["before_installation"] == "locked"

    def test_history_newest_first(self, client):
        body = _create(client)
        _move(client, body["id"], "before_measurement")

        data = client.get(f"/api/v1/montages/{body['id']}/history", headers=OFFICE_HEADERS).get_json()

        types = [e["event_type"] for e in data["items"]]
        assert types[0] == "status_change"
        assert types[-1] == "created"

    def test_board(self, client):
        body = _create(client)
        data = client.get("/api/v1/board", headers=OFFICE_HEADERS).get_json()
        lead = next(c for c in data["columns"] if c["status"] == "lead")
        assert [c["id"] for c in lead["cards"]] == [body["id"]]
        assert lead["cards"][0]["items_total"] == 10

    def test_board_process(self, client):
        data = client.get("/api/v1/board/process", headers=OFFICE_HEADERS).get_json()
        assert [s["id"] for s in data["stages"]][0] == "lead"
        assert data["stages"][0]["auto_advance_rule"] == {"id": "auto_advance_lead", "enabled": True}
        assert data["stages"][-1]["auto_advance_rule"] is None


class TestRequestGuards:
    def test_invalid_role_is_unauthorised(self, client):
        res = client.get("/api/v1/montages", headers={"X-User-Id": "u", "X-User-Role": "root"})
        assert res.status_code == 401

    def test_non_json_body(self, client):
        res = client.post("/api/v1/montages", data="client_name=x",
                          content_type="text/plain", headers=OFFICE_HEADERS)
        assert res.status_code == 415

    def test_health_needs_no_auth(self, client):
        res = client.get("/api/v1/health/live", headers={"X-User-Role": "root"})
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
