"""
Domain private-key generation and CSR creation.

Boundary: this module owns everything cryptographic that is *domain*-specific.
Account-key operations (JWK, JWS) live in acme_client/jws.py.
"""
from __future__ import annotations

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from acme_client.models import SubjectInfo


def generate_ec_key() -> ec.EllipticCurvePrivateKey:
    """Generate an EC P-256 private key for the domain certificate."""
    return ec.generate_private_key(ec.SECP256R1())


def build_subject(subject: SubjectInfo) -> x509.Name:
    """Build the CSR subject; empty fields are left out."""
    fields = (
        (NameOID.COUNTRY_NAME, subject.country),
        (NameOID.STATE_OR_PROVINCE_NAME, subject.state),
        (NameOID.LOCALITY_NAME, subject.locality),
        (NameOID.ORGANIZATION_NAME, subject.organization),
        (NameOID.ORGANIZATIONAL_UNIT_NAME, subject.unit),
        (NameOID.COMMON_NAME, subject.common_name),
    )
    return x509.Name([x509.NameAttribute(oid, value) for oid, value in fields if value])


def create_csr(private_key: ec.EllipticCurvePrivateKey, subject: SubjectInfo) -> bytes:
    """
    Create a DER-encoded CSR for *subject*.

    The common name, lowercased, is repeated as the only SubjectAlternativeName, which is
    what ACME CAs validate against the order identifiers.
    """
    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(build_subject(subject))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(subject.common_name.lower())]),
            critical=False,
        )
    )
    csr = builder.sign(private_key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.DER)
