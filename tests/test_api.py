import os
import time
import unittest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from gatepass.config import Settings
from gatepass.errors import VersionConflict
from gatepass.main import create_app


class AlwaysConflictingStore:
    """Every update loses the version race, as if another gate keeps writing first."""

    def __init__(self, inner):
        self.inner = inner

    def get(self, guest_id):
        return self.inner.get(guest_id)

    def put(self, state, expected_version):
        if expected_version > 0:
            raise VersionConflict(state.guest_id, expected_version)
        return self.inner.put(state, expected_version)


RESIDENT = {"X-Actor-Id": "resident-1"}
GUARD = {"X-Actor-Id": "guard-3"}


class TestGateApi(unittest.TestCase):
    def setUp(self):
        # Fresh in-memory database and key per test
        self.app = create_app(Settings(database_url="sqlite://", qr_key=os.urandom(32)))
        self.client = TestClient(self.app)

    def create_guest(self, **overrides):
        body = {
            "apartment_id": "A1",
            "guest_type": "one_time",
            "approval_type": "preapproved",
            "valid_from": date.today().isoformat(),
            "guest_name": "Meera",
            "total_members": 2,
        }
        body.update(overrides)
        return self.client.post("/guests", json=body)

    def scan(self, token):
        resp = self.client.post("/scan", json={"token": token}, headers=GUARD)
        self.assertEqual(resp.status_code, 200)
        return resp.json()

    def test_root(self):
        self.assertEqual(self.client.get("/").status_code, 200)

    def test_issue_and_scan(self):
        resp = self.create_guest()
        self.assertEqual(resp.status_code, 201)
        guest = resp.json()
        self.assertEqual(guest["status"], "approved")

        body = self.scan(guest["token"])
        self.assertTrue(body["access_granted"])
        self.assertEqual(body["reason"], "admitted")
        self.assertEqual(body["guest_info"]["guest_name"], "Meera")
        self.assertEqual(body["guest_info"]["total_members"], 2)

        # Same-day re-scan of a one-time guest is still admitted
        self.assertTrue(self.scan(guest["token"])["access_granted"])
        self.assertEqual(self.client.get(f"/guests/{guest['guest_id']}").json()["status"], "active")

    def test_scan_garbage(self):
        body = self.scan("garbage")
        self.assertFalse(body["access_granted"])
        self.assertEqual(body["reason"], "invalid_token")
        self.assertIsNone(body["guest_info"])

    def test_scans_are_logged_per_guest(self):
        guest = self.create_guest().json()
        self.scan(guest["token"])
        self.scan(guest["token"])
        resp = self.client.post(f"/guests/{guest['guest_id']}/revoke", headers=RESIDENT)
        self.assertEqual(resp.json()["revoked_by"], "resident-1")
        self.assertEqual(self.scan(guest["token"])["reason"], "revoked")

        logs = self.client.get(f"/guests/{guest['guest_id']}/scans").json()
        self.assertEqual(logs["count"], 3)
        self.assertEqual(sorted(s["reason"] for s in logs["scans"]), ["admitted", "admitted", "revoked"])
        self.assertTrue(all(s["scanned_by"] == "guard-3" for s in logs["scans"]))

    def test_approval_flow(self):
        guest = self.create_guest(approval_type="needs_approval").json()
        self.assertEqual(guest["status"], "pending_approval")
        gid = guest["guest_id"]

        self.assertEqual(self.scan(guest["token"])["reason"], "pending_approval")

        resp = self.client.post(f"/guests/{gid}/approve", headers=RESIDENT)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["decided_by"], "resident-1")

        # A second approval is a conflict, not a no-op
        resp = self.client.post(f"/guests/{gid}/approve", headers=RESIDENT)
        self.assertEqual(resp.status_code, 409)

        self.assertTrue(self.scan(guest["token"])["access_granted"])

    def test_deny_with_reason(self):
        gid = self.create_guest(approval_type="needs_approval").json()["guest_id"]
        resp = self.client.post(f"/guests/{gid}/deny", json={"reason": "not expecting anyone"}, headers=RESIDENT)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "denied")
        self.assertEqual(resp.json()["decision_note"], "not expecting anyone")

    def test_actor_header_required(self):
        gid = self.create_guest(approval_type="needs_approval").json()["guest_id"]
        self.assertEqual(self.client.post(f"/guests/{gid}/approve").status_code, 422)

    def test_unknown_guest(self):
        self.assertEqual(self.client.get("/guests/nope").status_code, 404)
        self.assertEqual(self.client.post("/guests/nope/revoke", headers=RESIDENT).status_code, 404)

    def test_frequent_guest_needs_end_date(self):
        self.assertEqual(self.create_guest(guest_type="frequent").status_code, 400)
        valid_to = (date.today() + timedelta(days=30)).isoformat()
        self.assertEqual(self.create_guest(guest_type="frequent", valid_to=valid_to).status_code, 201)

    def test_not_yet_valid(self):
        tomorrow = (date.today() + timedelta(days=1)).isoformat()
        guest = self.create_guest(valid_from=tomorrow).json()
        body = self.scan(guest["token"])
        self.assertEqual(body["reason"], "not_yet_valid")
        self.assertEqual(body["status"], "approved")

    def test_slow_verification_times_out(self):
        class SlowVerifier:
            def verify(self, key, token, now):
                time.sleep(0.5)

        self.app.state.settings.scan_timeout = 0.05
        self.app.state.verifier = SlowVerifier()
        body = self.scan("anything")
        self.assertFalse(body["access_granted"])
        self.assertEqual(body["reason"], "timeout")

    def test_scan_conflict_is_reported_and_logged(self):
        guest = self.create_guest().json()
        machine = self.app.state.machine
        machine.store = AlwaysConflictingStore(machine.store)

        resp = self.client.post("/scan", json={"token": guest["token"]}, headers=GUARD)
        self.assertEqual(resp.status_code, 409)
        self.assertIn("retry", resp.json()["detail"])

        logs = self.client.get(f"/guests/{guest['guest_id']}/scans").json()
        self.assertEqual(logs["count"], 1)
        self.assertEqual(logs["scans"][0]["reason"], "conflict")
        self.assertFalse(logs["scans"][0]["admitted"])

    def test_scan_log_keeps_party_details(self):
        guest = self.create_guest(community_id="C7", vehicle_number="KA-05-9999", guest_phone="+91 90000 11111").json()
        body = self.scan(guest["token"])
        self.assertEqual(body["guest_info"]["guest_phone"], "+91 90000 11111")

        scan = self.client.get(f"/guests/{guest['guest_id']}/scans").json()["scans"][0]
        self.assertEqual(scan["community_id"], "C7")
        self.assertEqual(scan["total_members_present"], 2)
        self.assertEqual(scan["vehicle_number"], "KA-05-9999")

    def test_guest_history_per_apartment(self):
        first = self.create_guest().json()
        pending = self.create_guest(approval_type="needs_approval").json()
        self.create_guest(apartment_id="B2")
        self.client.post(f"/guests/{first['guest_id']}/revoke", headers=RESIDENT)

        resp = self.client.get("/guests", params={"apartment_id": "A1"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["count"], 2)
        self.assertEqual({g["guest_id"] for g in body["guests"]}, {first["guest_id"], pending["guest_id"]})
        self.assertTrue(all("created_at" in g for g in body["guests"]))

        # Retired passes stay readable
        revoked = self.client.get("/guests", params={"apartment_id": "A1", "status": "revoked"}).json()
        self.assertEqual([g["guest_id"] for g in revoked["guests"]], [first["guest_id"]])

        waiting = self.client.get("/guests", params={"apartment_id": "A1", "status": "pending_approval"}).json()
        self.assertEqual([g["guest_id"] for g in waiting["guests"]], [pending["guest_id"]])

    def test_guest_history_rejects_unknown_status(self):
        resp = self.client.get("/guests", params={"apartment_id": "A1", "status": "bogus"})
        self.assertEqual(resp.status_code, 400)


if __name__ == '__main__':
    unittest.main()
