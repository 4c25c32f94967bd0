"""
Shared pytest fixtures.

FakeEngine
----------
A recording stand-in for the ACME engine: it hands out handles, answers
validation calls from a scripted list of statuses, issues self-signed
certificates for the key it is given, and can be told to raise at any step.
No network access is needed by any test using it.
"""
from __future__ import annotations

import datetime
from pathlib import Path
from typing import Callable, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from acme_client.models import (
    AccountIdentity,
    AuthorizationHandle,
    CertificateHandle,
    ChallengeHandle,
    ChallengeResult,
    OrderHandle,
)
from config import Settings
from storage import bundle

DOMAIN = "renew.example.com"
PASSWORD = "pfx-pass"
KEY_AUTHORIZATION = "abc123.xyz789"


# ─── Certificates ─────────────────────────────────────────────────────────────


def make_certificate(
    common_name: str = DOMAIN,
    not_after: Optional[datetime.datetime] = None,
    key: Optional[ec.EllipticCurvePrivateKey] = None,
) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Self-signed certificate for *common_name* expiring at *not_after* (default +90 days)."""
    key = key or ec.generate_private_key(ec.SECP256R1())
    now = datetime.datetime.now(datetime.timezone.utc)
    not_after = not_after or now + datetime.timedelta(days=90)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(min(now, not_after) - datetime.timedelta(days=1))
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )
    return cert, key


@pytest.fixture()
def cert_factory() -> Callable:
    return make_certificate


@pytest.fixture()
def write_bundle_file() -> Callable:
    """Write a PKCS#12 bundle holding certificates expiring at the given datetimes."""

    def _write(path: Path, expiries: list[datetime.datetime], password: str = PASSWORD) -> Path:
        certs = [make_certificate(not_after=exp)[0] for exp in expiries[1:]]
        leaf, key = make_certificate(not_after=expiries[0])
        data = bundle.encode_bundle(leaf, key, DOMAIN, password, chain=certs)
        return bundle.write_bundle(path, data)

    return _write


# ─── Settings ─────────────────────────────────────────────────────────────────


@pytest.fixture()
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    def _make(**overrides: object) -> Settings:
        values: dict = {
            "DOMAIN": DOMAIN,
            "ACCOUNT_EMAIL": "admin@example.com",
            "CERTIFICATE_PASSWORD": PASSWORD,
            "CERTIFICATE_PATH": str(tmp_path / "certs"),
            "CHALLENGE_PATH": str(tmp_path / "challenges"),
            "DELAY": 60_000,
            "CHALLENGE_POLL_INTERVAL": 10,
            "STAGING": True,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture()
def settings(make_settings) -> Settings:
    return make_settings()


# ─── Sleep recorder ───────────────────────────────────────────────────────────


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


# ─── Fake ACME engine ─────────────────────────────────────────────────────────


class FakeEngine:
    STAGING_URL = "https://staging.acme.test/directory"
    PRODUCTION_URL = "https://acme.test/directory"

    def __init__(self, challenge_path: Optional[str] = None) -> None:
        self.calls: list[str] = []
        self.statuses: list[str] = ["valid"]
        self.error_detail: Optional[str] = None
        self.key_authorization = KEY_AUTHORIZATION
        self.fail_on: dict[str, Exception] = {}
        self.challenge_path = challenge_path
        self.served: list[tuple[str, str]] = []
        self.validation_calls = 0
        self.issued: list[CertificateHandle] = []
        self.accounts_created = 0
        self.ordered: list[list[str]] = []

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    def select_endpoint(self, staging: bool) -> str:
        self._record("select_endpoint")
        return self.STAGING_URL if staging else self.PRODUCTION_URL

    def create_account(self, endpoint: str, email: str) -> AccountIdentity:
        self._record("create_account")
        self.accounts_created += 1
        return AccountIdentity(endpoint=endpoint, exported_key=f"NEW-KEY-{self.accounts_created}")

    def load_account(self, endpoint: str, exported_key: str) -> AccountIdentity:
        self._record("load_account")
        return AccountIdentity(endpoint=endpoint, exported_key=exported_key)

    def new_order(self, account: AccountIdentity, domains: list[str]) -> OrderHandle:
        self._record("new_order")
        self.ordered.append(list(domains))
        return OrderHandle(
            order_url="https://acme.test/order/1",
            domains=list(domains),
            authorization_urls=["https://acme.test/authz/1"],
            finalize_url="https://acme.test/finalize/1",
            account=account,
        )

    def get_authorizations(self, order: OrderHandle) -> list[AuthorizationHandle]:
        self._record("get_authorizations")
        return [
            AuthorizationHandle(
                authorization_url=url,
                domain=order.domains[0],
                status="pending",
                challenges=[],
                account=order.account,
            )
            for url in order.authorization_urls
        ]

    def get_http_challenge(self, authorization: AuthorizationHandle) -> ChallengeHandle:
        self._record("get_http_challenge")
        return ChallengeHandle(
            challenge_url="https://acme.test/chall/1",
            token=self.key_authorization.split(".")[0],
            key_authorization=self.key_authorization,
            account=authorization.account,
        )

    def validate_challenge(self, challenge: ChallengeHandle) -> ChallengeResult:
        self._record("validate_challenge")
        if self.challenge_path:
            for path in Path(self.challenge_path).iterdir():
                self.served.append((path.name, path.read_text()))
        status = self.statuses[min(self.validation_calls, len(self.statuses) - 1)]
        self.validation_calls += 1
        detail = self.error_detail if status == "invalid" else None
        return ChallengeResult(status=status, error_detail=detail)

    def generate_certificate(self, order, subject, private_key) -> CertificateHandle:
        self._record("generate_certificate")
        cert, _ = make_certificate(common_name=subject.common_name, key=private_key)
        handle = CertificateHandle(pem_chain="", certificates=[cert])
        self.issued.append(handle)
        return handle

    def encode_bundle(self, certificate, private_key, friendly_name, password) -> bytes:
        self._record("encode_bundle")
        return bundle.encode_bundle(certificate.leaf, private_key, friendly_name, password)


@pytest.fixture()
def fake_engine(settings) -> FakeEngine:
    return FakeEngine(challenge_path=settings.CHALLENGE_PATH)
