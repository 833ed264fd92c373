"""
Ephemeral self-signed TLS identity for the local listener.

A fresh RSA key and certificate are generated every time the proxy
starts. Nothing is written to persistent storage; the operator trusts
the certificate by pasting the base64 PEM printed at startup into their
kubeconfig as certificate-authority-data.
"""

import base64
import logging
import ssl
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

logger = logging.getLogger(__name__)

DEFAULT_DNS_NAMES = ("localhost", "lokalhost.local")
MIN_KEY_SIZE = 2048

# Validity window relative to generation time
VALID_BEFORE = timedelta(hours=1)
VALID_AFTER = timedelta(days=1)


class IdentityError(RuntimeError):
    """Raised when the key pair or certificate cannot be generated."""


@dataclass(frozen=True)
class TLSIdentity:
    """Private key and self-signed certificate presented to clients."""

    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate
    not_before: datetime
    not_after: datetime
    dns_names: Tuple[str, ...]

    def cert_pem(self) -> bytes:
        """Certificate in PEM encoding."""
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def key_pem(self) -> bytes:
        """Unencrypted PKCS#8 private key in PEM encoding."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def b64_cert(self) -> str:
        """PEM certificate wrapped in standard base64, ready for a kubeconfig."""
        return base64.b64encode(self.cert_pem()).decode("ascii")

    def ssl_context(self) -> ssl.SSLContext:
        """Build a server-side SSLContext presenting this identity.

        The ssl module only loads key material from files, so the PEMs
        are written into a private temporary directory that is removed
        as soon as the chain is loaded.
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        with tempfile.TemporaryDirectory(prefix="knative-run-proxy-") as tmp:
            cert_path = Path(tmp) / "tls.crt"
            key_path = Path(tmp) / "tls.key"
            cert_path.write_bytes(self.cert_pem())
            key_path.touch(mode=0o600)
            key_path.write_bytes(self.key_pem())
            context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        return context


def generate_identity(
    dns_names: Sequence[str] = DEFAULT_DNS_NAMES,
    key_size: int = MIN_KEY_SIZE,
    now: Optional[datetime] = None,
) -> TLSIdentity:
    """Generate a new RSA key pair and a self-signed server certificate.

    Args:
        dns_names: Names placed in the subjectAltName extension
        key_size: RSA modulus size in bits (at least 2048)
        now: Generation time; defaults to the current UTC time

    Returns:
        TLSIdentity valid from now - 1 hour to now + 1 day

    Raises:
        IdentityError: If the key or certificate cannot be created
    """
    if key_size < MIN_KEY_SIZE:
        raise IdentityError(f"key size must be at least {MIN_KEY_SIZE} bits, got {key_size}")
    if not dns_names:
        raise IdentityError("at least one DNS name is required")

    if now is None:
        now = datetime.now(timezone.utc)
    # X.509 times have one-second resolution
    now = now.replace(microsecond=0)
    not_before = now - VALID_BEFORE
    not_after = now + VALID_AFTER

    try:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    except (ValueError, TypeError) as e:
        raise IdentityError(f"failed to generate private key: {e}") from e

    name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Acme Co")])
    try:
        certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(private_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]),
                critical=False,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(private_key, hashes.SHA256())
        )
    except (ValueError, TypeError) as e:
        raise IdentityError(f"failed to create certificate: {e}") from e

    logger.debug(f"Generated self-signed certificate for {', '.join(dns_names)}, expires {not_after.isoformat()}")

    return TLSIdentity(
        private_key=private_key,
        certificate=certificate,
        not_before=not_before,
        not_after=not_after,
        dns_names=tuple(dns_names),
    )
