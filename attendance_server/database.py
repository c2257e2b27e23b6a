"""
database.py - SQLite Database Layer

Tables:
  students             - students known to the attendance system
  biometric_templates  - encrypted fingerprint template per student
  verification_logs    - enrollment / verification audit log
"""

import sqlite3
import logging

from attendance_server import config

logger = logging.getLogger(__name__)

DB_PATH = config.DB_PATH


def get_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn


def init_db():
    """Create tables if they don't already exist."""
    with get_connection() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS students (
                student_id          TEXT PRIMARY KEY,
                created_at          INTEGER NOT NULL,
                biometric_enrolled  INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS biometric_templates (
                student_id       TEXT NOT NULL REFERENCES students(student_id),
                template_type    TEXT NOT NULL,
                template_data    TEXT NOT NULL,   -- iv:authTag:ciphertext
                quality_score    REAL,
                scanner_model    TEXT,
                template_format  TEXT,
                created_at       INTEGER NOT NULL,
                updated_at       INTEGER NOT NULL,
                PRIMARY KEY (student_id, template_type)
            );

            CREATE TABLE IF NOT EXISTS verification_logs (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                student_id  TEXT,
                event_type  TEXT,         -- 'enroll' | 'verify_success' | 'verify_fail' | 'delete'
                confidence  REAL,
                timestamp   INTEGER,
                client_ip   TEXT
            );
        """)
    logger.info("Database initialised.")


# ─────────────────────────────────────────────
# STUDENT OPERATIONS
# ─────────────────────────────────────────────
def upsert_student(student_id: str, timestamp: int):
    with get_connection() as conn:
        conn.execute(
            "INSERT OR IGNORE INTO students(student_id, created_at, biometric_enrolled) "
            "VALUES(?,?,0)",
            (student_id, timestamp),
        )


def set_enrolled(student_id: str, enrolled: bool):
    with get_connection() as conn:
        conn.execute(
            "UPDATE students SET biometric_enrolled=? WHERE student_id=?",
            (1 if enrolled else 0, student_id),
        )


def get_student(student_id: str) -> dict | None:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM students WHERE student_id=?", (student_id,)
        ).fetchone()
    return dict(row) if row else None


def get_all_students() -> list:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT student_id, created_at, biometric_enrolled FROM students"
        ).fetchall()
    return [dict(r) for r in rows]


# ─────────────────────────────────────────────
# TEMPLATE OPERATIONS
# ─────────────────────────────────────────────
def store_template(student_id: str, template_data: str, timestamp: int,
                   template_type: str = config.TEMPLATE_TYPE,
                   quality_score: float = None,
                   scanner_model: str = config.DEFAULT_SCANNER,
                   template_format: str = config.DEFAULT_FORMAT):
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO biometric_templates(student_id, template_type, template_data,
                                               quality_score, scanner_model, template_format,
                                               created_at, updated_at)
               VALUES(?,?,?,?,?,?,?,?)
               ON CONFLICT(student_id, template_type) DO UPDATE SET
                   template_data=excluded.template_data,
                   quality_score=excluded.quality_score,
                   scanner_model=excluded.scanner_model,
                   template_format=excluded.template_format,
                   updated_at=excluded.updated_at""",
            (student_id, template_type, template_data, quality_score,
             scanner_model, template_format, timestamp, timestamp),
        )
    logger.info(f"Template stored for '{student_id}' ({template_type})")


def retrieve_template(student_id: str, template_type: str = config.TEMPLATE_TYPE) -> dict | None:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM biometric_templates WHERE student_id=? AND template_type=?",
            (student_id, template_type),
        ).fetchone()
    return dict(row) if row else None


def list_templates(student_id: str) -> list:
    """Template metadata for a student (no template_data), newest first."""
    with get_connection() as conn:
        rows = conn.execute(
            """SELECT template_type, quality_score, scanner_model, template_format,
                      created_at, updated_at
               FROM biometric_templates WHERE student_id=?
               ORDER BY updated_at DESC""",
            (student_id,),
        ).fetchall()
    return [dict(r) for r in rows]


def delete_templates(student_id: str) -> int:
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM biometric_templates WHERE student_id=?", (student_id,))
        deleted = cur.rowcount
    logger.info(f"Deleted {deleted} biometric template(s) for '{student_id}'")
    return deleted


# ─────────────────────────────────────────────
# AUDIT LOG
# ─────────────────────────────────────────────
def log_event(student_id: str, event_type: str, timestamp: int,
              confidence: float = None, client_ip: str = ""):
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO verification_logs(student_id, event_type, confidence, timestamp, client_ip)
               VALUES(?,?,?,?,?)""",
            (student_id, event_type, confidence, timestamp, client_ip),
        )


def get_logs(student_id: str = None, limit: int = 50) -> list:
    query = "SELECT * FROM verification_logs"
    params: tuple = ()
    if student_id:
        query += " WHERE student_id=?"
        params = (student_id,)
    query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
    params += (limit,)
    with get_connection() as conn:
        rows = conn.execute(query, params).fetchall()
    return [dict(r) for r in rows]
