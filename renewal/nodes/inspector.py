"""
certificate_inspector node — open the stored bundle and decide whether the
domain is due for (re)issuance.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import NamedTuple, Optional

from langchain_core.runnables import RunnableConfig

from renewal.context import get_context
from renewal.state import RenewalState
from storage import bundle

logger = logging.getLogger(__name__)

NOT_AFTER_FORMAT = "%d-%m-%Y"


class ExpiryCheck(NamedTuple):
    is_due: bool
    not_after: str


def check_expiry(
    path: Path,
    password: str,
    threshold_days: int = 7,
    now: Optional[datetime] = None,
) -> ExpiryCheck:
    """
    A missing bundle is due (first issuance).  Otherwise the bundle is due when
    ANY certificate expires before now + *threshold_days*.

    not_after is the formatted expiry of the last certificate iterated (leaf
    first, then chain), for display only.  A bundle holding no certificates is
    reported as not due with an empty not_after.

    Raises BundleDecodeError for a wrong password or a corrupt container.
    """
    if not path.exists():
        return ExpiryCheck(True, "")

    certificates = bundle.read_bundle(path, password)
    if not certificates:
        logger.warning("Certificate bundle %s contains no certificates", path)

    limit = (now or datetime.now(tz=timezone.utc)) + timedelta(days=threshold_days)
    is_due = False
    not_after = ""
    for cert in certificates:
        expiry = bundle.not_after(cert)
        is_due = is_due or expiry < limit
        not_after = expiry.strftime(NOT_AFTER_FORMAT)

    return ExpiryCheck(is_due, not_after)


def certificate_inspector(state: RenewalState, config: RunnableConfig) -> dict:
    settings = get_context(config).settings
    path = bundle.bundle_path(settings.CERTIFICATE_PATH, settings.DOMAIN)

    is_due, not_after = check_expiry(path, settings.CERTIFICATE_PASSWORD, settings.RENEWAL_THRESHOLD_DAYS)
    if not is_due:
        logger.info(" V. Current certificate is still valid :) [%s]", not_after)

    return {"bundle_path": str(path), "is_due": is_due, "not_after": not_after}
