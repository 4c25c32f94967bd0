"""
The ACME engine consumed by the renewal core.

`AcmeEngine` is the collaborator interface; `AcmeClientEngine` implements it on
top of the stateless `AcmeClient`, threading the account's nonce between calls.
Tests substitute their own engine object with the same methods.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, List, Protocol

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec

from acme_client import jws as jwslib
from acme_client.client import AcmeClient, AcmeError
from acme_client.crypto import create_csr
from acme_client.models import (
    AccountIdentity,
    AuthorizationHandle,
    CertificateHandle,
    ChallengeHandle,
    ChallengeResult,
    OrderHandle,
    SubjectInfo,
)
from storage import bundle

logger = logging.getLogger(__name__)

LETSENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"


class AcmeEngine(Protocol):
    def select_endpoint(self, staging: bool) -> str: ...

    def create_account(self, endpoint: str, email: str) -> AccountIdentity: ...

    def load_account(self, endpoint: str, exported_key: str) -> AccountIdentity: ...

    def new_order(self, account: AccountIdentity, domains: List[str]) -> OrderHandle: ...

    def get_authorizations(self, order: OrderHandle) -> List[AuthorizationHandle]: ...

    def get_http_challenge(self, authorization: AuthorizationHandle) -> ChallengeHandle: ...

    def validate_challenge(self, challenge: ChallengeHandle) -> ChallengeResult: ...

    def generate_certificate(
        self, order: OrderHandle, subject: SubjectInfo, private_key: ec.EllipticCurvePrivateKey
    ) -> CertificateHandle: ...

    def encode_bundle(
        self,
        certificate: CertificateHandle,
        private_key: ec.EllipticCurvePrivateKey,
        friendly_name: str,
        password: str,
    ) -> bytes: ...


class AcmeClientEngine:
    """RFC 8555 engine backed by `AcmeClient` (requests + josepy)."""

    def __init__(
        self,
        directory_url: str = "",
        timeout: int = 30,
        ca_bundle: str = "",
        insecure: bool = False,
        order_poll_interval: float = 3.0,
        order_max_attempts: int = 20,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.directory_url = directory_url
        self.timeout = timeout
        self.ca_bundle = ca_bundle
        self.insecure = insecure
        self.order_poll_interval = order_poll_interval
        self.order_max_attempts = order_max_attempts
        self._sleep = sleep

    # ── Account ───────────────────────────────────────────────────────────

    def select_endpoint(self, staging: bool) -> str:
        if self.directory_url:
            return self.directory_url
        return LETSENCRYPT_STAGING if staging else LETSENCRYPT_PRODUCTION

    def create_account(self, endpoint: str, email: str) -> AccountIdentity:
        client = self._client(endpoint)
        directory = client.get_directory()
        key = jwslib.generate_account_key()
        account_url, nonce = client.create_account(key, email, client.get_nonce(directory), directory)
        logger.debug("Registered ACME account %s", account_url)
        return AccountIdentity(
            endpoint=endpoint,
            exported_key=jwslib.account_key_to_pem(key),
            account_url=account_url,
            key=key,
            nonce=nonce or None,
            directory=directory,
        )

    def load_account(self, endpoint: str, exported_key: str) -> AccountIdentity:
        client = self._client(endpoint)
        directory = client.get_directory()
        key = jwslib.account_key_from_pem(exported_key)
        account_url, nonce = client.lookup_account(key, client.get_nonce(directory), directory)
        if not account_url:
            raise AcmeError(
                400,
                {
                    "type": "urn:ietf:params:acme:error:accountDoesNotExist",
                    "detail": f"No account registered at {endpoint} for the configured key",
                },
            )
        return AccountIdentity(
            endpoint=endpoint,
            exported_key=exported_key,
            account_url=account_url,
            key=key,
            nonce=nonce or None,
            directory=directory,
        )

    # ── Orders & challenges ───────────────────────────────────────────────

    def new_order(self, account: AccountIdentity, domains: List[str]) -> OrderHandle:
        client = self._client(account.endpoint)
        body, order_url, nonce = client.create_order(
            domains, account.key, account.account_url, self._nonce(client, account), self._directory(client, account)
        )
        account.nonce = nonce or None
        return OrderHandle(
            order_url=order_url,
            domains=list(domains),
            authorization_urls=body.get("authorizations", []),
            finalize_url=body.get("finalize", ""),
            account=account,
            status=body.get("status", "pending"),
        )

    def get_authorizations(self, order: OrderHandle) -> List[AuthorizationHandle]:
        account = order.account
        client = self._client(account.endpoint)
        authorizations = []
        for auth_url in order.authorization_urls:
            body, nonce = client.get_authorization(
                auth_url, account.key, account.account_url, self._nonce(client, account)
            )
            account.nonce = nonce or None
            authorizations.append(
                AuthorizationHandle(
                    authorization_url=auth_url,
                    domain=body.get("identifier", {}).get("value", ""),
                    status=body.get("status", "pending"),
                    challenges=body.get("challenges", []),
                    account=account,
                )
            )
        return authorizations

    def get_http_challenge(self, authorization: AuthorizationHandle) -> ChallengeHandle:
        challenge = next(
            (c for c in authorization.challenges if c.get("type") == "http-01"),
            None,
        )
        if challenge is None:
            raise AcmeError(
                0,
                {"detail": f"No http-01 challenge found in authorization {authorization.authorization_url}"},
            )
        token = challenge["token"]
        return ChallengeHandle(
            challenge_url=challenge["url"],
            token=token,
            key_authorization=jwslib.compute_key_authorization(token, authorization.account.key),
            account=authorization.account,
        )

    def validate_challenge(self, challenge: ChallengeHandle) -> ChallengeResult:
        account = challenge.account
        client = self._client(account.endpoint)
        body, nonce = client.respond_to_challenge(
            challenge.challenge_url, account.key, account.account_url, self._nonce(client, account)
        )
        account.nonce = nonce or None
        error = body.get("error") or {}
        return ChallengeResult(status=body.get("status", "pending"), error_detail=error.get("detail"))

    # ── Issuance ──────────────────────────────────────────────────────────

    def generate_certificate(
        self, order: OrderHandle, subject: SubjectInfo, private_key: ec.EllipticCurvePrivateKey
    ) -> CertificateHandle:
        account = order.account
        client = self._client(account.endpoint)

        self._poll_order(client, order, ready_states={"ready", "valid"})
        body, nonce = client.finalize_order(
            order.finalize_url, create_csr(private_key, subject), account.key, account.account_url,
            self._nonce(client, account),
        )
        account.nonce = nonce or None
        if body.get("status") != "valid":
            body = self._poll_order(client, order, ready_states={"valid"})

        cert_url = body.get("certificate")
        if not cert_url:
            raise AcmeError(0, {"detail": "Order valid but no certificate URL"})

        pem_chain, nonce = client.download_certificate(
            cert_url, account.key, account.account_url, self._nonce(client, account)
        )
        account.nonce = nonce or None
        return CertificateHandle(
            pem_chain=pem_chain,
            certificates=x509.load_pem_x509_certificates(pem_chain.encode()),
        )

    def encode_bundle(
        self,
        certificate: CertificateHandle,
        private_key: ec.EllipticCurvePrivateKey,
        friendly_name: str,
        password: str,
    ) -> bytes:
        return bundle.encode_bundle(
            certificate.leaf, private_key, friendly_name, password, chain=certificate.chain
        )

    # ── Internal ──────────────────────────────────────────────────────────

    def _client(self, endpoint: str) -> AcmeClient:
        return AcmeClient(endpoint, timeout=self.timeout, ca_bundle=self.ca_bundle, insecure=self.insecure)

    def _directory(self, client: AcmeClient, account: AccountIdentity) -> dict:
        if account.directory is None:
            account.directory = client.get_directory()
        return account.directory

    def _nonce(self, client: AcmeClient, account: AccountIdentity) -> str:
        if account.nonce:
            return account.nonce
        return client.get_nonce(self._directory(client, account))

    def _poll_order(self, client: AcmeClient, order: OrderHandle, ready_states: set[str]) -> dict:
        """Poll the order until it reaches one of *ready_states*; raise on invalid or timeout."""
        account = order.account
        for _ in range(self.order_max_attempts):
            body, nonce = client.get_order(
                order.order_url, account.key, account.account_url, self._nonce(client, account)
            )
            account.nonce = nonce or None
            status = body.get("status")
            order.status = status or order.status
            if status in ready_states:
                return body
            if status == "invalid":
                raise AcmeError(0, {"type": "invalid", "detail": f"Order became invalid: {body}"})
            self._sleep(self.order_poll_interval)

        raise AcmeError(
            0,
            {"type": "timeout", "detail": f"Order did not reach {sorted(ready_states)} after {self.order_max_attempts} polls"},
        )
