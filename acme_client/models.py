"""
Handles exchanged between the renewal core and the ACME engine.

All of them are transient: created during one renewal cycle and dropped at
its end.  Engine-specific payloads travel in the optional fields so a fake
engine in tests can build them with only the attributes the core reads.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from cryptography import x509


@dataclass
class AccountIdentity:
    endpoint: str                     # ACME directory URL
    exported_key: str                 # PEM form of the account key, reusable across restarts
    account_url: Optional[str] = None
    key: Any = None                   # josepy JWK, engine private
    nonce: Optional[str] = None       # last Replay-Nonce seen for this account
    directory: Optional[dict] = None


@dataclass
class OrderHandle:
    order_url: str
    domains: List[str]
    authorization_urls: List[str]
    finalize_url: str
    account: AccountIdentity
    status: str = "pending"


@dataclass
class AuthorizationHandle:
    authorization_url: str
    domain: str
    status: str
    challenges: List[dict]
    account: AccountIdentity


@dataclass
class ChallengeHandle:
    challenge_url: str
    token: str
    key_authorization: str
    account: AccountIdentity


@dataclass
class ChallengeResult:
    status: str                       # pending | processing | valid | invalid
    error_detail: Optional[str] = None


@dataclass
class SubjectInfo:
    common_name: str
    country: str = ""
    state: str = ""
    locality: str = ""
    organization: str = ""
    unit: str = ""


@dataclass
class CertificateHandle:
    pem_chain: str
    certificates: List[x509.Certificate] = field(default_factory=list)

    @property
    def leaf(self) -> x509.Certificate:
        return self.certificates[0]

    @property
    def chain(self) -> List[x509.Certificate]:
        return self.certificates[1:]
