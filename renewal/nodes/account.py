"""
acme_account_setup node — register a new ACME account or bind the known
account key to the selected CA endpoint.

The key used is handed back in state (``account_key_pem``) so the supervisor
can keep it for later cycles and persist it; Settings are never mutated.
"""
from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from acme_client.engine import AcmeEngine
from acme_client.models import AccountIdentity
from config import Settings
from renewal.context import get_context
from renewal.state import RenewalState

logger = logging.getLogger(__name__)


def load_or_create_account(
    settings: Settings, engine: AcmeEngine, account_key_pem: str | None
) -> tuple[AccountIdentity, bool]:
    """
    Returns (account, created).  No retry: errors from the engine abort the cycle.
    """
    endpoint = engine.select_endpoint(settings.STAGING)
    logger.info(" 1. Setting Environment %s...", endpoint)

    if not account_key_pem:
        logger.info(" 2. Creating account...")
        return engine.create_account(endpoint, settings.ACCOUNT_EMAIL), True

    logger.info(" 2. Using existing account...")
    return engine.load_account(endpoint, account_key_pem), False


def acme_account_setup(state: RenewalState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    account, created = load_or_create_account(ctx.settings, ctx.engine, state.get("account_key_pem"))
    return {
        "account": account,
        "account_created": created,
        "account_key_pem": account.exported_key,
    }
