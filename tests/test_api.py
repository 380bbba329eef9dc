"""HTTP-level tests for the FastAPI app via TestClient."""

import pytest

from conftest import BASE_LAT, BASE_LNG, offset

REPORTER = {"X-Caller-Id": "user-1", "X-Caller-Role": "reporter"}
OTHER_REPORTER = {"X-Caller-Id": "user-2", "X-Caller-Role": "reporter"}
HOSPITAL = {"X-Caller-Id": "hospital-1", "X-Caller-Role": "responder"}
HOSPITAL_2 = {"X-Caller-Id": "hospital-2", "X-Caller-Role": "responder"}


def post_report(client, north_m=0.0, headers=REPORTER, **extra):
    p = offset(north_m=north_m)
    return client.post("/reports", json={"lat": p.lat, "lng": p.lng, **extra}, headers=headers)


@pytest.fixture
def client(app_client):
    for rid, north in (("hospital-1", 0), ("hospital-2", 1_000)):
        p = offset(north_m=north)
        resp = app_client.put(
            f"/profiles/{rid}",
            json={"lat": p.lat, "lng": p.lng, "full_name": rid},
            headers={"X-Caller-Id": rid, "X-Caller-Role": "responder"},
        )
        assert resp.status_code == 200
    return app_client


class TestReports:
    def test_submit_and_join(self, client):
        r1 = post_report(client)
        assert r1.status_code == 200
        body1 = r1.json()
        assert body1["cluster_new"] is True
        assert body1["incident_id"].startswith("incident-")
        assert r1.headers["cache-control"].startswith("no-store")

        r2 = post_report(client, north_m=150, headers=OTHER_REPORTER, category="medical", is_witness=True)
        body2 = r2.json()
        assert body2["cluster_new"] is False
        assert body2["incident_id"] == body1["incident_id"]

    def test_missing_identity(self, client):
        resp = client.post("/reports", json={"lat": BASE_LAT, "lng": BASE_LNG})
        assert resp.status_code == 401
        assert resp.json()["error"] == "MissingIdentity"

    def test_unknown_role(self, client):
        resp = post_report(client, headers={"X-Caller-Id": "x", "X-Caller-Role": "admin"})
        assert resp.status_code == 422

    def test_responder_cannot_submit(self, client):
        assert post_report(client, headers=HOSPITAL).status_code == 403

    def test_out_of_range_location(self, client):
        resp = client.post("/reports", json={"lat": 95, "lng": 0}, headers=REPORTER)
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidInput"

    def test_unknown_category(self, client):
        assert post_report(client, category="flood").status_code == 422

    def test_body_validation(self, client):
        resp = client.post("/reports", json={"lat": "north"}, headers=REPORTER)
        assert resp.status_code == 422

    def test_get_own_report(self, client):
        rid = post_report(client, media_ref="media/1.jpg").json()["report_id"]
        resp = client.get(f"/reports/{rid}", headers=REPORTER)
        assert resp.status_code == 200
        assert resp.json()["media_ref"] == "media/1.jpg"

    def test_other_caller_cannot_read_report(self, client):
        rid = post_report(client).json()["report_id"]
        assert client.get(f"/reports/{rid}", headers=OTHER_REPORTER).status_code == 403

    def test_missing_report(self, client):
        assert client.get("/reports/report-missing", headers=REPORTER).status_code == 404

    def test_list_reports(self, client):
        post_report(client)
        post_report(client, north_m=5_000)
        post_report(client, headers=OTHER_REPORTER)
        body = client.get("/reports", headers=REPORTER).json()
        assert len(body["reports"]) == 2


class TestIncidents:
    def test_public_summary(self, client):
        iid = post_report(client).json()["incident_id"]
        client.post(f"/incidents/{iid}/accept", headers=HOSPITAL)
        body = client.get(f"/incidents/{iid}").json()
        assert body["status"] == "accepted"
        assert body["report_count"] == 1
        assert "accepted_by" not in body

    def test_missing_incident(self, client):
        resp = client.get("/incidents/incident-missing")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NotFound"

    def test_nearby(self, client):
        near = post_report(client, north_m=300).json()["incident_id"]
        far = post_report(client, north_m=40_000).json()["incident_id"]
        body = client.get("/incidents/nearby", headers=HOSPITAL).json()
        ids = [i["incident_id"] for i in body["incidents"]]
        assert near in ids
        assert far not in ids
        assert body["incidents"][0]["distance_m"] == pytest.approx(300, abs=0.2)

    def test_nearby_paging(self, client):
        for i in range(3):
            post_report(client, north_m=1_000 * (i + 1))
        body = client.get("/incidents/nearby", params={"limit": 1, "offset": 1}, headers=HOSPITAL).json()
        assert body["count"] == 1
        assert body["offset"] == 1
        assert body["incidents"][0]["distance_m"] == pytest.approx(2_000, abs=0.2)

    def test_nearby_bad_limit(self, client):
        assert client.get("/incidents/nearby", params={"limit": 0}, headers=HOSPITAL).status_code == 422

    def test_nearby_reporter_forbidden(self, client):
        assert client.get("/incidents/nearby", headers=REPORTER).status_code == 403

    def test_lifecycle(self, client):
        iid = post_report(client).json()["incident_id"]
        accepted = client.post(f"/incidents/{iid}/accept", headers=HOSPITAL)
        assert accepted.status_code == 200
        assert accepted.json()["accepted_by"] == "hospital-1"

        again = client.post(f"/incidents/{iid}/accept", headers=HOSPITAL_2)
        assert again.status_code == 409
        assert again.json()["error"] == "InvalidTransition"

        assert client.post(f"/incidents/{iid}/resolve", headers=HOSPITAL_2).status_code == 403

        resolved = client.post(f"/incidents/{iid}/resolve", headers=HOSPITAL)
        assert resolved.json()["status"] == "resolved"
        assert client.post(f"/incidents/{iid}/false-alarm", headers=HOSPITAL).status_code == 409

    def test_false_alarm(self, client):
        iid = post_report(client).json()["incident_id"]
        resp = client.post(f"/incidents/{iid}/false-alarm", headers=HOSPITAL_2)
        assert resp.status_code == 200
        assert resp.json()["status"] == "false_alarm"
        assert resp.json()["closed_by"] == "hospital-2"

    def test_transition_unknown_incident(self, client):
        assert client.post("/incidents/incident-missing/accept", headers=HOSPITAL).status_code == 404


CLINIC = {"X-Caller-Id": "clinic-1", "X-Caller-Role": "responder"}


class TestProfilesAndHealth:
    def test_profile_roundtrip_hides_phone(self, client):
        p = offset()
        resp = client.put(
            "/profiles/clinic-1",
            json={"lat": p.lat, "lng": p.lng, "phone": "+44", "radius_m": 500},
            headers=CLINIC,
        )
        assert resp.status_code == 200
        body = client.get("/profiles/clinic-1").json()
        assert body["responder_id"] == "clinic-1"
        assert "phone" not in body

    def test_profile_requires_identity(self, client):
        resp = client.put("/profiles/hospital-1", json={"lat": 0, "lng": 0, "radius_m": 100_000})
        assert resp.status_code == 401
        assert client.get("/profiles/hospital-1").json()["location"] == offset().to_dict()

    def test_profile_of_another_responder_forbidden(self, client):
        resp = client.put("/profiles/hospital-1", json={"lat": 0, "lng": 0}, headers=HOSPITAL_2)
        assert resp.status_code == 403
        assert client.get("/profiles/hospital-1").json()["location"] == offset().to_dict()

    def test_reporter_cannot_register_profile(self, client):
        resp = client.put("/profiles/user-1", json={"lat": 0, "lng": 0}, headers=REPORTER)
        assert resp.status_code == 403

    def test_profile_bad_radius(self, client):
        p = offset()
        resp = client.put("/profiles/clinic-1", json={"lat": p.lat, "lng": p.lng, "radius_m": -5}, headers=CLINIC)
        assert resp.status_code == 422

    def test_profile_radius_above_cap(self, client):
        p = offset()
        resp = client.put("/profiles/clinic-1", json={"lat": p.lat, "lng": p.lng, "radius_m": 1e8}, headers=CLINIC)
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidInput"
        assert client.get("/profiles/clinic-1").status_code == 404

    def test_missing_profile(self, client):
        assert client.get("/profiles/nobody").status_code == 404

    def test_health(self, client):
        post_report(client)
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["incidents"] == 1
        settings = body["settings"]
        assert settings["max_distance_m"] == 200
        assert settings["lock_resolution"] == 7
        assert settings["lock_timeout_s"] == 2.0
        assert settings["max_geofence_radius_m"] == 100_000
