"""
PKCS#12 (PFX) certificate bundle storage.

Layout:
  <certificate_path>/<domain>.pfx   — leaf + chain + private key, password protected

The bundle is written atomically (temp file + fsync + rename) with mode 0o600,
replacing any previous bundle for the domain.
"""
from __future__ import annotations

import os
import stat
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from renewal.errors import BundleDecodeError
from storage.atomic import atomic_write_bytes

PBE_ITERATIONS = 2000


def bundle_path(certificate_path: str, domain: str) -> Path:
    """Deterministic bundle location for *domain*."""
    return Path(certificate_path) / f"{domain}.pfx"


def encode_bundle(
    certificate: x509.Certificate,
    private_key: PrivateKeyTypes,
    friendly_name: str,
    password: str,
    chain: Optional[Sequence[x509.Certificate]] = None,
) -> bytes:
    """Serialize certificate, chain and key into a password-protected PKCS#12 blob."""
    if password:
        # SHA1/3DES PBE with a SHA1 MAC: the encoding Windows and older Java keystores import
        encryption = (
            serialization.PrivateFormat.PKCS12.encryption_builder()
            .kdf_rounds(PBE_ITERATIONS)
            .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
            .hmac_hash(hashes.SHA1())
            .build(password.encode())
        )
    else:
        encryption = serialization.NoEncryption()
    return pkcs12.serialize_key_and_certificates(
        friendly_name.encode(),
        private_key,
        certificate,
        list(chain) if chain else None,
        encryption,
    )


def decode_bundle(data: bytes, password: str) -> List[x509.Certificate]:
    """
    Return every certificate in the bundle, leaf first.

    Raises BundleDecodeError when the password is wrong or the container is corrupt.
    """
    try:
        parsed = pkcs12.load_pkcs12(data, password.encode() if password else None)
    except ValueError as exc:
        raise BundleDecodeError(f"Unable to open certificate bundle: {exc}") from exc

    certificates: List[x509.Certificate] = []
    if parsed.cert is not None:
        certificates.append(parsed.cert.certificate)
    certificates.extend(c.certificate for c in parsed.additional_certs)
    return certificates


def read_bundle(path: Path, password: str) -> List[x509.Certificate]:
    """Read and decode the bundle at *path*."""
    return decode_bundle(path.read_bytes(), password)


def write_bundle(path: Path, data: bytes) -> Path:
    """Atomically write *data* to *path* with mode 0o600."""
    atomic_write_bytes(path, data)
    os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
    return path


def not_after(cert: x509.Certificate) -> datetime:
    """Return the certificate's notAfter as a timezone-aware UTC datetime."""
    return cert.not_valid_after_utc


def common_name(cert: x509.Certificate) -> str:
    """First subject CN of *cert*, or "" when it has none."""
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else ""
