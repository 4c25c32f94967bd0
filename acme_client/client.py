"""
Low-level ACME RFC 8555 HTTP client.

This client is intentionally **stateless**: account key, account URL and the
current nonce are passed in by the caller (the engine), and every signed call
returns the fresh ``Replay-Nonce`` so the caller can thread it forward.

RFC 8555 compliance notes
--------------------------
* POST-as-GET: authorizations, orders and certificates are fetched with a
  signed empty payload, not plain GET.
* badNonce retry: ACME servers return a fresh `Replay-Nonce` header even on
  error responses.  `_post_signed` retries up to `_NONCE_RETRIES` times.
"""
from __future__ import annotations

import base64
from typing import Optional

from josepy.jwk import JWK
import requests

from acme_client import jws as jwslib

_NONCE_RETRIES = 3


class AcmeError(Exception):
    """Raised when the ACME server returns an error response."""

    def __init__(self, status_code: int, body: dict, new_nonce: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.new_nonce = new_nonce
        problem_type = body.get("type", "unknown")
        detail = body.get("detail", str(body))
        super().__init__(f"ACME {status_code}: {problem_type} — {detail}")


class AcmeClient:
    """
    Implements the RFC 8555 requests used by the renewal agent.
    Tested against Pebble and Let's Encrypt staging.
    """

    def __init__(
        self,
        directory_url: str,
        timeout: int = 30,
        ca_bundle: str = "",
        insecure: bool = False,
    ) -> None:
        self.directory_url = directory_url
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "acme-pfx-renewer/1.0"})

        if insecure:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self._session.verify = False
        elif ca_bundle:
            self._session.verify = ca_bundle

    # ── Directory & nonce ─────────────────────────────────────────────────

    def get_directory(self) -> dict:
        """GET /directory — discover ACME endpoint URLs."""
        resp = self._session.get(self.directory_url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_nonce(self, directory: dict) -> str:
        """HEAD /newNonce — fetch a fresh anti-replay nonce."""
        resp = self._session.head(directory["newNonce"], timeout=self.timeout)
        nonce = resp.headers.get("Replay-Nonce")
        if not nonce:
            raise AcmeError(resp.status_code, {"detail": "No Replay-Nonce header"})
        return nonce

    # ── Account ───────────────────────────────────────────────────────────

    def create_account(
        self,
        account_key: JWK,
        email: str,
        nonce: str,
        directory: dict,
    ) -> tuple[str, str]:
        """
        POST /newAccount agreeing to the terms of service.
        Returns (account_url, new_nonce).
        """
        payload: dict = {"termsOfServiceAgreed": True}
        if email:
            payload["contact"] = [f"mailto:{email}"]

        resp = self._post_signed(payload, account_key, nonce, directory["newAccount"], directory=directory)
        return resp.headers.get("Location", ""), resp.headers.get("Replay-Nonce", "")

    def lookup_account(
        self,
        account_key: JWK,
        nonce: str,
        directory: dict,
    ) -> tuple[Optional[str], str]:
        """
        POST /newAccount with onlyReturnExisting=True.
        Returns (account_url or None, new_nonce).
        Only accountDoesNotExist maps to None; any other error propagates.
        """
        try:
            resp = self._post_signed(
                {"onlyReturnExisting": True}, account_key, nonce, directory["newAccount"], directory=directory
            )
            return resp.headers.get("Location"), resp.headers.get("Replay-Nonce", "")
        except AcmeError as e:
            if e.status_code == 400 and e.body.get("type", "").endswith(":accountDoesNotExist"):
                return None, e.new_nonce
            raise

    # ── Orders ────────────────────────────────────────────────────────────

    def create_order(
        self,
        domains: list[str],
        account_key: JWK,
        account_url: str,
        nonce: str,
        directory: dict,
    ) -> tuple[dict, str, str]:
        """
        POST /newOrder — create a certificate order for one or more domains.
        Returns (order_body, order_url, new_nonce).
        """
        payload = {"identifiers": [{"type": "dns", "value": d} for d in domains]}
        resp = self._post_signed(payload, account_key, nonce, directory["newOrder"], account_url, directory=directory)
        return resp.json(), resp.headers.get("Location", ""), resp.headers.get("Replay-Nonce", "")

    def get_order(
        self,
        order_url: str,
        account_key: JWK,
        account_url: str,
        nonce: str,
    ) -> tuple[dict, str]:
        """POST-as-GET an order object. Returns (order_body, new_nonce)."""
        resp = self._post_signed(None, account_key, nonce, order_url, account_url)
        return resp.json(), resp.headers.get("Replay-Nonce", "")

    # ── Authorizations & challenges ───────────────────────────────────────

    def get_authorization(
        self,
        auth_url: str,
        account_key: JWK,
        account_url: str,
        nonce: str,
    ) -> tuple[dict, str]:
        """POST-as-GET an authorization object. Returns (authz_body, new_nonce)."""
        resp = self._post_signed(None, account_key, nonce, auth_url, account_url)
        return resp.json(), resp.headers.get("Replay-Nonce", "")

    def respond_to_challenge(
        self,
        challenge_url: str,
        account_key: JWK,
        account_url: str,
        nonce: str,
    ) -> tuple[dict, str]:
        """
        POST challenge URL with empty payload {} to tell the CA to verify.
        The response carries the current challenge status.
        Returns (challenge_body, new_nonce).
        """
        resp = self._post_signed({}, account_key, nonce, challenge_url, account_url)
        return resp.json(), resp.headers.get("Replay-Nonce", "")

    # ── Finalization & certificate download ───────────────────────────────

    def finalize_order(
        self,
        finalize_url: str,
        csr_der: bytes,
        account_key: JWK,
        account_url: str,
        nonce: str,
    ) -> tuple[dict, str]:
        """
        POST /finalize — submit DER-encoded CSR.
        Returns (order_body, new_nonce).
        """
        csr_b64 = base64.urlsafe_b64encode(csr_der).rstrip(b"=").decode()
        resp = self._post_signed({"csr": csr_b64}, account_key, nonce, finalize_url, account_url)
        return resp.json(), resp.headers.get("Replay-Nonce", "")

    def download_certificate(
        self,
        cert_url: str,
        account_key: JWK,
        account_url: str,
        nonce: str,
    ) -> tuple[str, str]:
        """
        POST-as-GET the certificate URL and return (full_chain_pem, new_nonce).
        The PEM chain is: leaf cert + intermediates.
        """
        resp = self._post_signed(
            None, account_key, nonce, cert_url, account_url,
            accept="application/pem-certificate-chain",
        )
        return resp.text, resp.headers.get("Replay-Nonce", "")

    # ── Internal ──────────────────────────────────────────────────────────

    def _post_signed(
        self,
        payload: dict | None,
        account_key: JWK,
        nonce: str,
        url: str,
        account_url: str | None = None,
        accept: str = "application/json",
        directory: dict | None = None,
    ) -> requests.Response:
        """
        Sign *payload* with *account_key* and POST to *url*, retrying up to
        `_NONCE_RETRIES` times on `badNonce` responses.

        The fresh nonce is taken from the error response when present, so a
        retry costs no extra round-trip.
        """
        current_nonce = nonce
        for attempt in range(_NONCE_RETRIES):
            body = jwslib.sign_request(payload, account_key, current_nonce, url, account_url)
            resp = self._session.post(
                url,
                json=body,
                headers={
                    "Content-Type": "application/jose+json",
                    "Accept": accept,
                },
                timeout=self.timeout,
            )
            if resp.ok:
                return resp

            try:
                error_body = resp.json()
            except ValueError:
                error_body = {"detail": resp.text}

            if "badNonce" in error_body.get("type", "") and attempt < _NONCE_RETRIES - 1:
                fresh = resp.headers.get("Replay-Nonce")
                if fresh:
                    current_nonce = fresh
                    continue
                if directory is None:
                    directory = self.get_directory()
                current_nonce = self.get_nonce(directory)
                continue

            raise AcmeError(resp.status_code, error_body, resp.headers.get("Replay-Nonce", ""))

        raise AcmeError(0, {"detail": "Exceeded nonce retry limit"})
