"""
api.py - Flask REST API Server
Biometric enrollment and verification for class attendance.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json
import time
import logging
from functools import wraps

from flask import Flask, request, jsonify, g
import jwt as pyjwt

from attendance_common.crypto import EncryptionError, DecryptionError
from attendance_common.models import TemplateDocument, MalformedTemplateError
from attendance_common.utils import current_timestamp, generate_nonce, mask_sensitive
from attendance_server import config
from attendance_server import database as db
from attendance_server.crypto_server import seal_template, open_template, verify_against
from attendance_server.enrollment import prepare_enrollment, EnrollmentRejected

logger = logging.getLogger("attendance_api")

app = Flask(__name__)
used_nonces: dict = {}


# ─── HELPERS ──────────────────────────────────────────────────────────────────

def _purge_expired_nonces():
    now = time.time()
    expired = [k for k, v in used_nonces.items() if v < now]
    for k in expired:
        del used_nonces[k]


def _issue_token(operator_id: str) -> str:
    now = current_timestamp()
    payload = {
        "sub": operator_id,
        "iat": now,
        "exp": now + config.JWT_EXPIRY_SEC,
        "nonce": generate_nonce(),
    }
    return pyjwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def _verify_token(token: str) -> dict:
    payload = pyjwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    nonce = payload.get("nonce", "")
    _purge_expired_nonces()
    if nonce in used_nonces:
        raise ValueError("Replay detected: nonce already used.")
    used_nonces[nonce] = payload["exp"] + config.NONCE_TTL_SEC
    return payload


def require_jwt(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return jsonify({"error": "Missing or malformed Authorization header"}), 401
        token = auth_header[7:]
        try:
            payload = _verify_token(token)
            g.operator_id = payload["sub"]
        except pyjwt.ExpiredSignatureError:
            return jsonify({"error": "Token expired"}), 401
        except (pyjwt.InvalidTokenError, ValueError, KeyError) as e:
            return jsonify({"error": f"Token invalid: {str(e)}"}), 401
        return f(*args, **kwargs)
    return decorated


def client_ip() -> str:
    return request.remote_addr or ""


def _request_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _biometric_payload(data: dict):
    """biometric_data may arrive as a JSON string or an already-decoded object."""
    raw = data.get("biometric_data")
    if isinstance(raw, dict):
        return json.dumps(raw)
    return raw


# ─── API ROUTES ───────────────────────────────────────────────────────────────

@app.route("/api/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "timestamp": current_timestamp()}), 200


@app.route("/api/token", methods=["POST"])
def issue_token():
    data = _request_body()
    operator_id = str(data.get("operator_id", "")).strip()
    if not operator_id:
        return jsonify({"error": "operator_id required"}), 400
    token = _issue_token(operator_id)
    logger.info(f"[TOKEN] Issued for '{operator_id}' from {client_ip()}")
    return jsonify({"token": token, "expires_in": config.JWT_EXPIRY_SEC}), 200


@app.route("/api/biometric/enroll", methods=["POST"])
@require_jwt
def enroll():
    data = _request_body()
    logger.debug(f"[ENROLL] request {mask_sensitive(data)}")
    student_id = str(data.get("student_id", "")).strip()
    biometric_data = _biometric_payload(data)
    if not student_id or not biometric_data:
        return jsonify({"error": "student_id and biometric_data required"}), 400

    existing_json = None
    if data.get("append"):
        stored = db.retrieve_template(student_id)
        if stored is not None:
            try:
                existing_json = open_template(stored["template_data"])
            except DecryptionError as e:
                logger.error(f"[ENROLL] Stored template unreadable for '{student_id}': {e}")
                return jsonify({"error": "Stored biometric data is unreadable; re-enroll without append"}), 409

    try:
        doc = prepare_enrollment(biometric_data, existing_json, data.get("quality_score"))
    except MalformedTemplateError as e:
        return jsonify({"error": f"Invalid biometric template data: {e}"}), 400
    except EnrollmentRejected as e:
        return jsonify({"error": str(e)}), 400

    try:
        blob = seal_template(doc.to_json())
    except EncryptionError:
        logger.exception("[ENROLL] Encryption failed")
        return jsonify({"error": "Biometric enrollment failed"}), 500

    now = current_timestamp()
    scanner_model = data.get("scanner_model") or config.DEFAULT_SCANNER
    quality = data.get("quality_score", doc.quality)
    db.upsert_student(student_id, now)
    db.store_template(
        student_id, blob, now,
        quality_score=quality,
        scanner_model=scanner_model,
        template_format=data.get("template_format") or doc.format or config.DEFAULT_FORMAT,
    )
    db.set_enrolled(student_id, True)
    db.log_event(student_id, "enroll", now, client_ip=client_ip())
    logger.info(f"[ENROLL] Template stored for '{student_id}' using {scanner_model} "
                f"by '{g.operator_id}'")
    return jsonify({
        "message": "Biometric enrollment successful",
        "student_id": student_id,
        "templates": len(doc.candidates()),
    }), 201


@app.route("/api/biometric/verify", methods=["POST"])
@require_jwt
def verify():
    data = _request_body()
    student_id = str(data.get("student_id", "")).strip()
    biometric_data = _biometric_payload(data)
    if not student_id or not biometric_data:
        return jsonify({"error": "student_id and biometric_data required"}), 400

    try:
        capture = TemplateDocument.from_json(biometric_data)
    except MalformedTemplateError as e:
        return jsonify({"error": f"Invalid biometric template data: {e}"}), 400
    if not capture.format:
        return jsonify({"error": "Template must include 'template' and 'format' keys"}), 400

    stored = db.retrieve_template(student_id)
    if stored is None:
        return jsonify({"error": "No biometric template found for this student. Enroll first."}), 404

    result = verify_against(biometric_data, stored["template_data"])
    event = "verify_success" if result.matched else "verify_fail"
    db.log_event(student_id, event, current_timestamp(),
                 confidence=result.confidence, client_ip=client_ip())
    logger.info(f"[VERIFY] {event.upper()} for '{student_id}' "
                f"confidence={result.confidence:.2f}% threshold={config.CONFIDENCE_THRESHOLD}%")
    return jsonify({
        **result.to_dict(),
        "student_id": student_id,
        "threshold": config.CONFIDENCE_THRESHOLD,
        "template_format": capture.format,
        "scanner_model": data.get("scanner_model") or config.DEFAULT_SCANNER,
    }), 200


@app.route("/api/biometric/status/<student_id>", methods=["GET"])
@require_jwt
def status(student_id: str):
    student = db.get_student(student_id)
    if student is None:
        return jsonify({"error": "Student not found"}), 404
    templates = db.list_templates(student_id)
    latest = templates[0] if templates else {}
    return jsonify({
        "student_id": student_id,
        "enrolled": any(t["template_type"] == config.TEMPLATE_TYPE for t in templates),
        "enrolled_at": latest.get("created_at"),
        "templates": len(templates),
        "quality_score": latest.get("quality_score"),
        "scanner_model": latest.get("scanner_model"),
        "template_format": latest.get("template_format"),
    }), 200


@app.route("/api/biometric/<student_id>", methods=["DELETE"])
@require_jwt
def delete_biometric(student_id: str):
    if db.get_student(student_id) is None:
        return jsonify({"error": "Student not found"}), 404
    deleted = db.delete_templates(student_id)
    db.set_enrolled(student_id, False)
    db.log_event(student_id, "delete", current_timestamp(), client_ip=client_ip())
    logger.info(f"[DELETE] {deleted} template(s) removed for '{student_id}'")
    return jsonify({"message": "Biometric data deleted successfully",
                    "deleted_templates": deleted}), 200


@app.route("/api/biometric/capabilities", methods=["GET"])
def capabilities():
    return jsonify({
        "supported_scanners": config.SUPPORTED_SCANNERS,
        "supported_formats": config.SUPPORTED_FORMATS,
        "min_quality_score": config.MIN_QUALITY_SCORE,
        "match_threshold": config.CONFIDENCE_THRESHOLD,
        "max_enrolled_templates": config.MAX_ENROLLED_TEMPLATES,
    }), 200


@app.route("/api/students", methods=["GET"])
def list_students():
    students = db.get_all_students()
    return jsonify({"students": students, "count": len(students)}), 200


@app.route("/api/logs", methods=["GET"])
def audit_logs():
    sid = request.args.get("student_id")
    limit = request.args.get("limit", 50, type=int)
    logs = db.get_logs(student_id=sid, limit=limit)
    return jsonify({"logs": logs, "count": len(logs)}), 200


# ─── ERROR HANDLERS ───────────────────────────────────────────────────────────

@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Endpoint not found"}), 404


@app.errorhandler(500)
def internal(e):
    logger.exception("Internal server error")
    return jsonify({"error": "Internal server error"}), 500


# ─── STARTUP ──────────────────────────────────────────────────────────────────

def main():
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    if "BIOMETRIC_TEMPLATE_ENCRYPTION_KEY" not in os.environ:
        logger.warning("BIOMETRIC_TEMPLATE_ENCRYPTION_KEY not set - using a per-process key; "
                       "stored templates will not survive a restart")
    db.init_db()

    ssl_context = None
    if config.USE_HTTPS:
        from attendance_server.certs import generate_tls_cert
        generate_tls_cert(config.CERT_FILE, config.KEY_FILE, host=config.SERVER_HOST)
        ssl_context = (config.CERT_FILE, config.KEY_FILE)
        protocol = "https"
        logger.info(f"TLS enabled - using {config.CERT_FILE}")
    else:
        protocol = "http"
        logger.info("Running in HTTP mode")

    logger.info(f"API health check: {protocol}://{config.SERVER_HOST}:{config.SERVER_PORT}/api/health")
    app.run(host=config.SERVER_HOST, port=config.SERVER_PORT,
            ssl_context=ssl_context, debug=config.DEBUG)


if __name__ == "__main__":
    main()
