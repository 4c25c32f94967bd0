"""
Per-cycle state for the renewal graph.

Everything here lives for exactly one supervision cycle.  Settings, the ACME
engine and the sleep function are not state: they reach the nodes through the
graph's ``configurable`` run config (see renewal/context.py).
"""
from __future__ import annotations

from typing import Optional

from typing_extensions import TypedDict

from acme_client.models import AccountIdentity, ChallengeResult, OrderHandle


class RenewalState(TypedDict, total=False):
    # ── Certificate inspection ─────────────────────────────────────────────
    bundle_path: str
    is_due: bool
    not_after: str                    # dd-mm-YYYY of the last certificate inspected; "" if none

    # ── Account ────────────────────────────────────────────────────────────
    account_key_pem: Optional[str]    # input: known key; output: key used (new or reused)
    account_created: bool
    account: Optional[AccountIdentity]

    # ── Active ACME flow ───────────────────────────────────────────────────
    order: Optional[OrderHandle]
    challenge_result: Optional[ChallengeResult]
    validation_attempts: int

    # ── Outcome ────────────────────────────────────────────────────────────
    issued_not_after: Optional[str]
    renewed: bool
