"""Self-signed certificate issuance using ``cryptography``."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .base import AdapterResult, PathLike

logger = logging.getLogger(__name__)

_SUBJECT_OIDS = {
    "C": NameOID.COUNTRY_NAME,
    "ST": NameOID.STATE_OR_PROVINCE_NAME,
    "L": NameOID.LOCALITY_NAME,
    "O": NameOID.ORGANIZATION_NAME,
    "OU": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "CN": NameOID.COMMON_NAME,
    "emailAddress": NameOID.EMAIL_ADDRESS,
}


def parse_subject(subject: str) -> x509.Name:
    """Parse an OpenSSL style subject such as ``/C=US/O=Example/CN=host``."""
    attributes = []
    for part in subject.strip("/").split("/"):
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep or key not in _SUBJECT_OIDS:
            raise ValueError(f"Unsupported subject component: {part!r}")
        attributes.append(x509.NameAttribute(_SUBJECT_OIDS[key], value))
    if not attributes:
        raise ValueError("Subject must contain at least one component")
    return x509.Name(attributes)


class SelfSignedAuthority:
    """Issue RSA key pairs with matching self-signed X.509 certificates."""

    def __init__(self, key_size: int = 2048) -> None:
        self._key_size = key_size

    def _issue(
        self, subject: str, key_path: Path, cert_path: Path, validity_days: int
    ) -> None:
        name = parse_subject(subject)
        key = rsa.generate_private_key(public_exponent=65537, key_size=self._key_size)
        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )

        key_path.parent.mkdir(parents=True, exist_ok=True)
        cert_path.parent.mkdir(parents=True, exist_ok=True)
        key_bytes = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(key_bytes)
        cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))

    async def issue_self_signed(
        self,
        subject: str,
        out_key_path: PathLike,
        out_cert_path: PathLike,
        validity_days: int,
    ) -> AdapterResult:
        logger.info(f"Issuing self-signed certificate {out_cert_path}")
        try:
            await asyncio.to_thread(
                self._issue, subject, Path(out_key_path), Path(out_cert_path), validity_days
            )
        except (ValueError, OSError) as exc:
            return AdapterResult.failed(str(exc), exit_info="certificate issuance failed")
        return AdapterResult.ok(stdout=str(out_cert_path))
