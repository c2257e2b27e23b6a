"""
test_api.py - API Tests
Tests for: token issuance, enrollment, verification, status, deletion
"""

import sys
import os
import unittest
import tempfile
import json

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from attendance_client.capture import capture_fingerprint, simulate_payload
from attendance_server import database as db
from attendance_server import config
from attendance_server.api import app, used_nonces
from attendance_server.certs import generate_tls_cert
from attendance_client.client_app import build_parser


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self._db_path = db.DB_PATH
        db.DB_PATH = os.path.join(self.tmp.name, "test.db")
        db.init_db()
        app.testing = True
        self.client = app.test_client()
        used_nonces.clear()

    def tearDown(self):
        db.DB_PATH = self._db_path
        self.tmp.cleanup()

    def headers(self) -> dict:
        resp = self.client.post("/api/token", json={"operator_id": "lecturer"})
        self.assertEqual(resp.status_code, 200)
        return {"Authorization": f"Bearer {resp.get_json()['token']}"}

    def enroll(self, student_id, seed=0, noise=0.0, **extra):
        data = capture_fingerprint(student_id, noise_rate=noise, rng=np.random.default_rng(seed))
        body = {"student_id": student_id, "biometric_data": data, **extra}
        return self.client.post("/api/biometric/enroll", json=body, headers=self.headers())

    def verify(self, student_id, finger=None, seed=1, noise=0.02):
        data = capture_fingerprint(finger or student_id, noise_rate=noise,
                                   rng=np.random.default_rng(seed))
        return self.client.post("/api/biometric/verify",
                                json={"student_id": student_id, "biometric_data": data},
                                headers=self.headers())


# ─────────────────────────────────────────────
class TestTokens(ApiTestCase):

    def test_health(self):
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["status"], "ok")

    def test_token_requires_operator(self):
        resp = self.client.post("/api/token", json={})
        self.assertEqual(resp.status_code, 400)

    def test_missing_token_rejected(self):
        resp = self.client.post("/api/biometric/enroll", json={})
        self.assertEqual(resp.status_code, 401)

    def test_garbage_token_rejected(self):
        resp = self.client.post("/api/biometric/enroll", json={},
                                headers={"Authorization": "Bearer not-a-jwt"})
        self.assertEqual(resp.status_code, 401)

    def test_token_replay_rejected(self):
        headers = self.headers()
        first = self.client.get("/api/biometric/status/nobody", headers=headers)
        self.assertEqual(first.status_code, 404)
        second = self.client.get("/api/biometric/status/nobody", headers=headers)
        self.assertEqual(second.status_code, 401)

    def test_unknown_endpoint(self):
        resp = self.client.get("/api/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertIn("error", resp.get_json())


# ─────────────────────────────────────────────
class TestEnrollment(ApiTestCase):

    def test_enroll_and_status(self):
        resp = self.enroll("S001")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()["templates"], 1)

        status = self.client.get("/api/biometric/status/S001", headers=self.headers())
        self.assertEqual(status.status_code, 200)
        body = status.get_json()
        self.assertTrue(body["enrolled"])
        self.assertEqual(body["templates"], 1)
        self.assertEqual(body["template_format"], "ANSI-378")
        self.assertEqual(body["scanner_model"], config.DEFAULT_SCANNER)

    def test_stored_template_is_encrypted(self):
        self.enroll("S001")
        stored = db.retrieve_template("S001")
        self.assertEqual(len(stored["template_data"].split(":")), 3)
        self.assertNotIn(simulate_payload("S001"), stored["template_data"])

    def test_enroll_requires_fields(self):
        resp = self.client.post("/api/biometric/enroll", json={"student_id": "S001"},
                                headers=self.headers())
        self.assertEqual(resp.status_code, 400)

    def test_enroll_rejects_malformed_template(self):
        resp = self.client.post("/api/biometric/enroll",
                                json={"student_id": "S001", "biometric_data": '{"format": "ANSI-378"}'},
                                headers=self.headers())
        self.assertEqual(resp.status_code, 400)

    def test_enroll_rejects_nan_quality(self):
        raw = '{"template": "AAAA", "format": "ANSI-378", "metadata": {"quality": NaN}}'
        resp = self.client.post("/api/biometric/enroll",
                                json={"student_id": "S001", "biometric_data": raw},
                                headers=self.headers())
        self.assertEqual(resp.status_code, 400)
        self.assertIsNone(db.retrieve_template("S001"))

    def test_enroll_rejects_low_quality(self):
        resp = self.enroll("S001", quality_score=30)
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Quality", resp.get_json()["error"])

    def test_enroll_accepts_object_payload(self):
        body = {"student_id": "S001",
                "biometric_data": {"template": "AB" * 50, "format": "ANSI-378"}}
        resp = self.client.post("/api/biometric/enroll", json=body, headers=self.headers())
        self.assertEqual(resp.status_code, 201)

    def test_append_merges_scans(self):
        self.enroll("S001", seed=1, noise=0.05)
        resp = self.enroll("S001", seed=2, noise=0.05, append=True)
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()["templates"], 2)

    def test_reenroll_without_append_replaces(self):
        self.enroll("S001", seed=1, noise=0.05)
        resp = self.enroll("S001", seed=2, noise=0.05)
        self.assertEqual(resp.get_json()["templates"], 1)

    def test_append_over_corrupted_record_conflicts(self):
        self.enroll("S001")
        db.store_template("S001", "00:11:22", 0)
        resp = self.enroll("S001", append=True)
        self.assertEqual(resp.status_code, 409)

    def test_capabilities(self):
        body = self.client.get("/api/biometric/capabilities").get_json()
        self.assertEqual(body["match_threshold"], config.CONFIDENCE_THRESHOLD)
        self.assertIn("ANSI-378", body["supported_formats"])


# ─────────────────────────────────────────────
class TestVerification(ApiTestCase):

    def test_same_finger_matches(self):
        self.enroll("S001")
        resp = self.verify("S001")
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertTrue(body["matched"])
        self.assertGreaterEqual(body["confidence"], body["threshold"])

    def test_other_finger_rejected(self):
        self.enroll("S001")
        body = self.verify("S001", finger="S002").get_json()
        self.assertFalse(body["matched"])

    def test_verification_is_audited(self):
        self.enroll("S001")
        self.verify("S001")
        self.verify("S001", finger="S002")
        logs = self.client.get("/api/logs?student_id=S001").get_json()["logs"]
        events = sorted(l["event_type"] for l in logs)
        self.assertEqual(events, ["enroll", "verify_fail", "verify_success"])

    def test_not_enrolled(self):
        self.assertEqual(self.verify("S404").status_code, 404)

    def test_requires_format(self):
        self.enroll("S001")
        resp = self.client.post("/api/biometric/verify",
                                json={"student_id": "S001",
                                      "biometric_data": json.dumps({"template": "AB"})},
                                headers=self.headers())
        self.assertEqual(resp.status_code, 400)

    def test_deeply_nested_capture_rejected(self):
        self.enroll("S001")
        resp = self.client.post("/api/biometric/verify",
                                json={"student_id": "S001",
                                      "biometric_data": "[" * 100000 + "]" * 100000},
                                headers=self.headers())
        self.assertEqual(resp.status_code, 400)

    def test_corrupted_record_looks_like_mismatch(self):
        self.enroll("S001")
        db.store_template("S001", "00:11:22", 0)
        body = self.verify("S001").get_json()
        self.assertFalse(body["matched"])
        self.assertEqual(body["confidence"], 0.0)

    def test_appended_scan_still_matches_first_capture(self):
        self.enroll("S001", seed=1, noise=0.05)
        self.enroll("S001", seed=2, noise=0.05, append=True)
        self.assertTrue(self.verify("S001", seed=3).get_json()["matched"])


# ─────────────────────────────────────────────
class TestDeletion(ApiTestCase):

    def test_delete_removes_template(self):
        self.enroll("S001")
        resp = self.client.delete("/api/biometric/S001", headers=self.headers())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["deleted_templates"], 1)

        status = self.client.get("/api/biometric/status/S001", headers=self.headers()).get_json()
        self.assertFalse(status["enrolled"])
        self.assertEqual(status["templates"], 0)
        self.assertEqual(self.verify("S001").status_code, 404)

    def test_delete_unknown_student(self):
        resp = self.client.delete("/api/biometric/S404", headers=self.headers())
        self.assertEqual(resp.status_code, 404)

    def test_students_listing(self):
        self.enroll("S001")
        self.enroll("S002")
        body = self.client.get("/api/students").get_json()
        self.assertEqual(body["count"], 2)


# ─────────────────────────────────────────────
class TestTlsCert(unittest.TestCase):

    def test_generate_once(self):
        with tempfile.TemporaryDirectory() as d:
            cert_file = os.path.join(d, "certs", "server.crt")
            key_file = os.path.join(d, "certs", "server.key")
            self.assertTrue(generate_tls_cert(cert_file, key_file))
            with open(cert_file, "rb") as f:
                self.assertTrue(f.read().startswith(b"-----BEGIN CERTIFICATE-----"))
            self.assertFalse(generate_tls_cert(cert_file, key_file))


# ─────────────────────────────────────────────
class TestClientParser(unittest.TestCase):

    def test_enroll_append(self):
        args = build_parser().parse_args(["enroll", "--student", "S001", "--append"])
        self.assertEqual(args.cmd, "enroll")
        self.assertTrue(args.append)

    def test_verify_as_other_student(self):
        args = build_parser().parse_args(["verify", "--student", "S001", "--as-student", "S002"])
        self.assertEqual(args.as_student, "S002")
        self.assertAlmostEqual(args.noise, 0.02)


# ─────────────────────────────────────────────
if __name__ == "__main__":
    unittest.main(verbosity=2)
