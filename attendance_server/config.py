"""
config.py - Server Configuration
"""

import os
import secrets

# ─────────────────────────────────────────────
# JWT CONFIG
# ─────────────────────────────────────────────
JWT_SECRET_KEY = os.environ.get("JWT_SECRET", secrets.token_hex(32))
JWT_ALGORITHM  = "HS256"
JWT_EXPIRY_SEC = int(os.environ.get("JWT_EXPIRY_SEC", 300))       # 5 minutes

# ─────────────────────────────────────────────
# SERVER
# ─────────────────────────────────────────────
SERVER_HOST = os.environ.get("SERVER_HOST", "127.0.0.1")
SERVER_PORT = int(os.environ.get("PORT", 5000))
DEBUG       = os.environ.get("FLASK_DEBUG", "0") == "1"

DB_PATH = os.environ.get(
    "ATTENDANCE_DB_PATH", os.path.join(os.path.dirname(__file__), "attendance.db")
)

# ─────────────────────────────────────────────
# TLS - set USE_HTTPS=1 to serve over HTTPS (self-signed cert generated on start)
# ─────────────────────────────────────────────
USE_HTTPS = os.environ.get("USE_HTTPS", "0") == "1"
CERT_DIR  = os.path.join(os.path.dirname(__file__), "certs")
CERT_FILE = os.path.join(CERT_DIR, "server.crt")
KEY_FILE  = os.path.join(CERT_DIR, "server.key")

# ─────────────────────────────────────────────
# BIOMETRIC
# ─────────────────────────────────────────────
# 64 hex chars.  If unset a per-process key is used and stored templates
# become unreadable after a restart.
TEMPLATE_ENCRYPTION_KEY = os.environ.get(
    "BIOMETRIC_TEMPLATE_ENCRYPTION_KEY", secrets.token_hex(32)
)
CONFIDENCE_THRESHOLD   = float(os.environ.get("BIOMETRIC_CONFIDENCE_THRESHOLD", 75))
MIN_QUALITY_SCORE      = int(os.environ.get("MIN_QUALITY_SCORE", 60))
MAX_ENROLLED_TEMPLATES = int(os.environ.get("MAX_ENROLLED_TEMPLATES", 5))

TEMPLATE_TYPE     = "FINGERPRINT"
DEFAULT_SCANNER   = "Digital Persona U.4500"
DEFAULT_FORMAT    = "ANSI-378"
SUPPORTED_FORMATS = ["ANSI-378"]
SUPPORTED_SCANNERS = ["Digital Persona U.4500"]

# ─────────────────────────────────────────────
# SECURITY PARAMS
# ─────────────────────────────────────────────
NONCE_TTL_SEC = 60
