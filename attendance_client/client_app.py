"""
client_app.py - Operator Client
Drives enrollment and verification against the attendance API.

Usage:
  attendance-client enroll  --student S001
  attendance-client enroll  --student S001 --append
  attendance-client verify  --student S001
  attendance-client status  --student S001
  attendance-client delete  --student S001
"""

import sys
import os
import argparse
import json
import logging
import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from attendance_client.capture import capture_fingerprint

logger = logging.getLogger(__name__)

SERVER_URL  = os.environ.get("ATTENDANCE_SERVER_URL", "http://127.0.0.1:5000")
OPERATOR_ID = os.environ.get("ATTENDANCE_OPERATOR", "lecturer")


# ──────────────────────────────────────────────
# JWT HELPERS
# ──────────────────────────────────────────────
def get_token(operator_id: str = OPERATOR_ID) -> str:
    """Obtain a short-lived, single-use JWT from the server."""
    try:
        resp = requests.post(
            f"{SERVER_URL}/api/token",
            json={"operator_id": operator_id},
            timeout=5,
        )
        resp.raise_for_status()
        return resp.json()["token"]
    except requests.exceptions.ConnectionError:
        logger.error("=" * 55)
        logger.error("CANNOT CONNECT TO SERVER at %s", SERVER_URL)
        logger.error("Make sure the server is running first:")
        logger.error("  attendance-server")
        logger.error("=" * 55)
        sys.exit(1)


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _report(resp: requests.Response) -> dict:
    body = resp.json()
    if resp.ok:
        logger.info(json.dumps(body, indent=2))
    else:
        logger.error(f"HTTP {resp.status_code}: {body.get('error', body)}")
    return body


# ──────────────────────────────────────────────
# COMMANDS
# ──────────────────────────────────────────────
def enroll(student_id: str, append: bool = False, noise_rate: float = 0.02) -> dict:
    logger.info(f"ENROLLMENT  (student='{student_id}', append={append})")
    biometric_data = capture_fingerprint(student_id, noise_rate=noise_rate)
    resp = requests.post(
        f"{SERVER_URL}/api/biometric/enroll",
        json={"student_id": student_id, "biometric_data": biometric_data, "append": append},
        headers=auth_headers(get_token()),
        timeout=10,
    )
    return _report(resp)


def verify(student_id: str, noise_rate: float = 0.02, claimed_id: str = None) -> dict:
    """
    Capture *claimed_id*'s finger (defaults to *student_id*) and verify it
    against the template stored for *student_id*.
    """
    logger.info(f"VERIFICATION  (student='{student_id}')")
    biometric_data = capture_fingerprint(claimed_id or student_id, noise_rate=noise_rate)
    resp = requests.post(
        f"{SERVER_URL}/api/biometric/verify",
        json={"student_id": student_id, "biometric_data": biometric_data},
        headers=auth_headers(get_token()),
        timeout=10,
    )
    body = _report(resp)
    if resp.ok:
        if body["matched"]:
            logger.info(f"MATCH - confidence {body['confidence']:.2f}%")
        else:
            logger.warning(f"NO MATCH - confidence {body['confidence']:.2f}%")
    return body


def status(student_id: str) -> dict:
    resp = requests.get(
        f"{SERVER_URL}/api/biometric/status/{student_id}",
        headers=auth_headers(get_token()),
        timeout=5,
    )
    return _report(resp)


def delete(student_id: str) -> dict:
    resp = requests.delete(
        f"{SERVER_URL}/api/biometric/{student_id}",
        headers=auth_headers(get_token()),
        timeout=5,
    )
    return _report(resp)


# ──────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fingerprint Attendance Client")
    sub = parser.add_subparsers(dest="cmd")

    p_enroll = sub.add_parser("enroll", help="Enroll a student's fingerprint")
    p_enroll.add_argument("--student", required=True)
    p_enroll.add_argument("--append", action="store_true",
                          help="add this scan to the existing enrollment")
    p_enroll.add_argument("--noise", type=float, default=0.02)

    p_verify = sub.add_parser("verify", help="Verify a student's fingerprint")
    p_verify.add_argument("--student", required=True)
    p_verify.add_argument("--as-student", dest="as_student",
                          help="simulate another student's finger (impostor test)")
    p_verify.add_argument("--noise", type=float, default=0.02)

    p_status = sub.add_parser("status", help="Show enrollment status")
    p_status.add_argument("--student", required=True)

    p_delete = sub.add_parser("delete", help="Delete a student's biometric data")
    p_delete.add_argument("--student", required=True)
    return parser


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "enroll":
        enroll(args.student, append=args.append, noise_rate=args.noise)
    elif args.cmd == "verify":
        verify(args.student, noise_rate=args.noise, claimed_id=args.as_student)
    elif args.cmd == "status":
        status(args.student)
    elif args.cmd == "delete":
        delete(args.student)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
