"""
Account key handling and JWS signing for the ACME protocol (RFC 8555).

Uses *josepy* (the library powering Certbot) for JWK support.

Responsibilities (boundary with acme_client/crypto.py):
  - Generate the **account** RSA key; import exported RSA or EC P-256 keys
  - Load / persist the exported key on disk
  - Compute the JWK thumbprint (for HTTP-01 key-authorizations)
  - Sign ACME POST bodies as JWS (with jwk or kid header)
"""
from __future__ import annotations

import base64
import json
import os
from pathlib import Path
from typing import Any

from josepy import jwa
from josepy.jwk import JWK, JWKEC, JWKRSA
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from storage.atomic import atomic_write_text


# ─── Account key I/O ──────────────────────────────────────────────────────────


def generate_account_key(key_size: int = 2048) -> JWKRSA:
    """Generate a new RSA account key wrapped in a josepy JWKRSA."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    return JWKRSA(key=private_key)


def account_key_to_pem(jwk: JWK) -> str:
    """Export the account key as an unencrypted PKCS8 PEM string."""
    return jwk.key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def account_key_from_pem(pem: str) -> JWK:
    """
    Rebuild an account key from its exported PEM form.

    RSA keys and EC P-256 keys are accepted; accounts registered by other ACME
    clients commonly use the latter.
    """
    private_key = serialization.load_pem_private_key(pem.encode(), password=None)
    if isinstance(private_key, rsa.RSAPrivateKey):
        return JWKRSA(key=private_key)
    if isinstance(private_key, ec.EllipticCurvePrivateKey) and isinstance(private_key.curve, ec.SECP256R1):
        return JWKEC(key=private_key)
    raise ValueError("Account key must be an RSA or EC P-256 private key")


def save_account_key(pem: str, path: str) -> None:
    """Persist the exported account key atomically with mode 0o600."""
    atomic_write_text(Path(path), pem)
    os.chmod(path, 0o600)


def load_account_key(path: str) -> str | None:
    """Return the exported account key stored at *path*, or None if absent."""
    p = Path(path)
    if not p.exists():
        return None
    return p.read_text(encoding="utf-8")


# ─── JWK thumbprint ───────────────────────────────────────────────────────────


def compute_jwk_thumbprint(jwk: JWK) -> str:
    """
    Base64url SHA-256 thumbprint of the public JWK (RFC 7638).
    Used to construct the HTTP-01 key-authorization:
      key_authorization = token + "." + thumbprint
    """
    return _b64url(jwk.public_key().thumbprint(hash_function=hashes.SHA256))


def compute_key_authorization(token: str, jwk: JWK) -> str:
    """Return the HTTP-01 key-authorization string for *token*."""
    return f"{token}.{compute_jwk_thumbprint(jwk)}"


# ─── JWS signing ─────────────────────────────────────────────────────────────


def sign_request(
    payload: dict | None,
    account_key: JWK,
    nonce: str,
    url: str,
    account_url: str | None = None,
) -> dict:
    """
    Sign an ACME request payload and return the JWS dict to POST.

    If *account_url* is None the JWS header carries the full public JWK (used
    for newAccount and account lookup).  Otherwise the header uses the "kid"
    form.  A None *payload* produces the empty POST-as-GET body.
    """
    header: dict[str, Any] = {
        "alg": signature_algorithm(account_key).name,
        "nonce": nonce,
        "url": url,
    }
    if account_url:
        header["kid"] = account_url
    else:
        header["jwk"] = account_key.public_key().to_partial_json()

    protected = _b64url(json.dumps(header).encode())
    payload_b64 = "" if payload is None else _b64url(json.dumps(payload).encode())

    signing_input = f"{protected}.{payload_b64}".encode()
    signature = signature_algorithm(account_key).sign(account_key.key, signing_input)

    return {
        "protected": protected,
        "payload": payload_b64,
        "signature": _b64url(signature),
    }


def signature_algorithm(account_key: JWK) -> jwa.JWASignature:
    """RS256 for RSA account keys, ES256 (raw r||s signature) for EC P-256 keys."""
    if isinstance(account_key, JWKEC):
        return jwa.ES256
    return jwa.RS256


def _b64url(data: bytes) -> str:
    """URL-safe base64 encoding with no padding (as required by JOSE)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()
