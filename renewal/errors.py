"""
Error taxonomy for the renewal agent.

Protocol failures are raised by the ACME client as ``acme_client.client.AcmeError``
and network failures as ``requests.RequestException``; both propagate unchanged
to the supervisor, like every error below.
"""
from __future__ import annotations


class RenewalError(Exception):
    """Base class for errors raised by the renewal core."""


class ConfigurationError(RenewalError):
    """Missing or invalid configuration, raised before the supervision loop starts."""


class BundleDecodeError(RenewalError):
    """The certificate bundle could not be opened (wrong password or corrupt container)."""


class ValidationFailure(RenewalError):
    """The CA marked the domain challenge invalid."""

    def __init__(self, domain: str, detail: str | None) -> None:
        self.domain = domain
        self.detail = detail
        super().__init__(f"Domain {domain} is NOT valid: {detail or 'no detail provided'}")


class ValidationTimeout(RenewalError):
    """The challenge was still pending after the configured number of validation calls."""

    def __init__(self, domain: str, attempts: int) -> None:
        self.domain = domain
        self.attempts = attempts
        super().__init__(f"Challenge for {domain} still pending after {attempts} validation calls")
