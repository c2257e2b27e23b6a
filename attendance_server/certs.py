"""
certs.py - Self-signed TLS Certificate
Generated on first HTTPS start if no certificate exists yet.
"""

import os
import datetime
import ipaddress
import logging

from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)


def generate_tls_cert(cert_file: str, key_file: str, host: str = "127.0.0.1",
                      days: int = 365) -> bool:
    """
    Write a self-signed certificate / key pair.
    Returns False (and leaves files alone) if both already exist.
    """
    if os.path.exists(cert_file) and os.path.exists(key_file):
        logger.info("TLS certificate already exists – skipping generation.")
        return False

    os.makedirs(os.path.dirname(cert_file), exist_ok=True)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    logger.info("Generating self-signed TLS certificate …")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Fingerprint Attendance"),
        x509.NameAttribute(NameOID.COMMON_NAME, host),
    ])

    now = datetime.datetime.now(datetime.timezone.utc)
    alt_names = [x509.DNSName("localhost")]
    try:
        alt_names.append(x509.IPAddress(ipaddress.ip_address(host)))
    except ValueError:
        alt_names.append(x509.DNSName(host))

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        .sign(key, hashes.SHA256())
    )

    with open(key_file, "wb") as f:
        f.write(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        ))

    with open(cert_file, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))

    logger.info(f"Certificate written to {cert_file}")
    logger.info(f"Private key written to {key_file}")
    return True
