"""
Smoke tests for the tracker API.

Tests the end-to-end flow through HTTP:
- Health check
- Batch creation (form and JSON)
- Scanner lookup and confirmation
- Patient data
- QR images
- Stock ledger and reconciliation
- Partner and user management
"""

from tracker.app.db.migrate import get_connection
from tracker.tests.auth_helpers import JSON, login, login_superuser


def _create(client, partner, quantity=1):
    response = client.post(
        "/protocols",
        json={"province": "DKI", "partner_id": partner["id"], "quantity": quantity},
        headers=JSON,
    )
    assert response.status_code == 200
    return response.json()["codes"]


def test_health_check(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_protocols_form_redirects(client, partner):
    login_superuser(client)

    response = client.post(
        "/protocols",
        data={"province": "DKI", "partner_id": str(partner["id"]), "quantity": "3"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"].startswith("/dashboard?success=")
    assert client.get("/api/stock").json()[0]["total_allocated"] == 3


def test_create_protocols_json(client, partner):
    login_superuser(client)

    codes = _create(client, partner, quantity=2)

    assert len(codes) == 2
    assert all(code.endswith(("_001", "_002")) for code in codes)


def test_create_protocols_rejects_bad_quantity(client, partner):
    login_superuser(client)

    response = client.post(
        "/protocols",
        json={"province": "DKI", "partner_id": partner["id"], "quantity": 101},
        headers=JSON,
    )

    assert response.status_code == 400
    assert "between 1 and 100" in response.json()["error"]
    assert client.get("/api/stock").json()[0]["total_allocated"] == 0


def test_status_update_by_id(client, partner):
    login_superuser(client)
    code = _create(client, partner)[0]
    conn = get_connection()
    try:
        protocol_id = conn.execute("SELECT id FROM protocols WHERE code = ?", (code,)).fetchone()[0]
    finally:
        conn.close()

    response = client.post(
        f"/protocols/{protocol_id}/status", json={"status": "terpakai"}, headers=JSON
    )

    assert response.status_code == 200
    assert response.json()["protocol"]["status"] == "terpakai"
    stock = client.get("/api/stock").json()[0]
    assert (stock["total_used"], stock["total_available"]) == (1, 0)

    missing = client.post("/protocols/9999/status", json={"status": "terpakai"}, headers=JSON)
    assert missing.status_code == 404


def test_scan_and_confirm_usage(client, partner):
    login_superuser(client)
    code = _create(client, partner)[0]

    scanned = client.get(f"/scan/{code}", headers=JSON)
    assert scanned.status_code == 200
    assert scanned.json()["status"] == "created"
    assert scanned.json()["partner_name"] == "RS Sehat"

    confirmed = client.post(f"/api/confirm-usage/{code}", json={"action": "mark_terpakai"})
    assert confirmed.status_code == 200
    assert confirmed.json()["message"] == "Status updated to terpakai"

    assert client.get("/scan/UNKNOWN", headers=JSON).status_code == 404
    unknown = client.post("/api/confirm-usage/UNKNOWN", json={"action": "mark_terpakai"})
    assert unknown.status_code == 404
    assert unknown.json() == {"error": "Code not found"}
    bad_action = client.post(f"/api/confirm-usage/{code}", json={"action": "lose"})
    assert bad_action.status_code == 400


def test_patient_data(client, partner):
    login_superuser(client)
    code = _create(client, partner)[0]

    response = client.post(
        f"/api/update-patient-data/{code}",
        json={"patient_name": "Siti", "healthcare_facility": "RS Sehat", "age": 30},
    )
    assert response.status_code == 200

    data = client.get(f"/api/patient-data/{code}").json()["data"]
    assert data["patient_name"] == "Siti"
    assert data["age"] == "30"

    missing = client.post(f"/api/update-patient-data/{code}", json={"patient_name": "Siti"})
    assert missing.status_code == 400
    assert client.get("/api/patient-data/UNKNOWN").status_code == 404


def test_qr_images(client, partner):
    login_superuser(client)
    code = _create(client, partner)[0]

    shown = client.get(f"/barcode/{code}.png")
    assert shown.status_code == 200
    assert shown.headers["content-type"] == "image/png"
    assert shown.content.startswith(b"\x89PNG")

    download = client.get(f"/download/barcode/{code}.png")
    assert download.status_code == 200
    assert download.headers["content-disposition"] == f'attachment; filename="qrcode-{code}.png"'
    assert len(download.content) > len(shown.content)


def test_provinces(client):
    login_superuser(client)

    provinces = client.get("/api/provinces").json()

    assert {"code": "DKI", "name": "DKI Jakarta"} in provinces


def test_reconcile_endpoints(client, partner, make_user):
    login_superuser(client)
    _create(client, partner, quantity=2)

    report = client.get("/api/stock/reconcile").json()
    assert report == {"checked": 1, "drifted": [], "repaired": False}

    conn = get_connection()
    try:
        conn.execute("UPDATE stock_tracking SET total_allocated = 50")
        conn.commit()
    finally:
        conn.close()

    repaired = client.post("/api/stock/reconcile").json()
    assert repaired["repaired"] is True
    assert repaired["drifted"][0]["expected"]["total_allocated"] == 2
    assert client.get("/api/stock").json()[0]["total_allocated"] == 2

    make_user("kurir", "distribusi")
    login(client, "kurir", "secret123")
    assert client.get("/api/stock/reconcile").status_code == 403


def test_partner_endpoints(client):
    login_superuser(client)

    created = client.post(
        "/api/partner",
        json={"name": "Klinik Prima", "type": "klinik", "code": "kp1", "province_code": "JAB"},
    )
    assert created.status_code == 200
    assert created.json()["partner"]["code"] == "KP1"

    duplicate = client.post(
        "/api/partner",
        json={"name": "Lain", "type": "klinik", "code": "KP1", "province_code": "JAB"},
    )
    assert duplicate.status_code == 400
    assert duplicate.json() == {"error": "Kode mitra sudah digunakan"}

    listed = client.get("/api/partner/JAB").json()
    assert [p["code"] for p in listed] == ["KP1"]

    partner_id = listed[0]["id"]
    toggled = client.post(f"/partner/{partner_id}/toggle-status", headers=JSON)
    assert toggled.json() == {"success": True, "is_active": False}
    assert client.get("/api/partner/JAB").json() == []


def test_user_endpoints(client):
    login_superuser(client)

    created = client.post(
        "/users",
        json={
            "username": "operator1",
            "email": "operator1@tracker.id",
            "full_name": "Operator Satu",
            "role": "operator",
            "password": "secret123",
            "confirm_password": "secret123",
        },
    )
    assert created.status_code == 200
    user_id = created.json()["id"]

    page = client.get("/users", headers=JSON).json()
    assert "password_hash" not in page["users"][0]
    assert page["roles"] == ["admin", "operator", "distribusi"]

    short = client.post(f"/users/{user_id}/reset-password", json={"newPassword": "123"})
    assert short.status_code == 400
    reset = client.post(f"/users/{user_id}/reset-password", json={"newPassword": "brand-new"})
    assert reset.json()["message"] == "Password reset successfully"

    toggled = client.post(f"/users/{user_id}/toggle-status")
    assert toggled.json()["message"] == "User deactivated successfully"


def test_dashboard_view(client, partner):
    login_superuser(client)
    _create(client, partner, quantity=3)

    view = client.get("/dashboard", headers=JSON).json()

    assert view["page"] == "dashboard"
    assert view["stats"]["total"] == 3
    assert view["stock"]["total_allocated"] == 3
    assert len(view["protocols"]) == 3

    partial = client.get("/dashboard?period=custom&start_date=2026-10-01", headers=JSON)
    assert partial.status_code == 200
    assert partial.json()["window"] == view["window"]
    assert partial.json()["stats"]["total"] == 3

    bad = client.get(
        "/dashboard?period=custom&start_date=2026-10-09&end_date=2026-10-01", headers=JSON
    )
    assert bad.status_code == 400


def test_analytics_rollup(client, partner):
    login_superuser(client)
    _create(client, partner, quantity=2)

    row = client.post("/api/analytics/rollup", json={}).json()

    assert row["total_protocols"] == 2
    assert row["created_count"] == 2
    assert client.post("/api/analytics/rollup", json={"date": "yesterday"}).status_code == 400


def test_non_text_fields_are_rejected(client, partner):
    login_superuser(client)
    code = _create(client, partner)[0]

    listed_province = client.post(
        "/protocols",
        json={"province": ["DKI"], "partner_id": partner["id"], "quantity": 1},
        headers=JSON,
    )
    assert listed_province.status_code == 400
    assert listed_province.json() == {"error": "Invalid province"}

    listed_action = client.post(f"/api/confirm-usage/{code}", json={"action": ["mark_terpakai"]})
    assert listed_action.status_code == 400
    assert listed_action.json() == {"error": "Invalid action"}

    assert client.get("/api/stock").json()[0]["total_used"] == 0
