"""
order_initializer node — POST /newOrder for exactly the configured domain.
"""
from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from renewal.context import get_context
from renewal.state import RenewalState

logger = logging.getLogger(__name__)


def order_initializer(state: RenewalState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    domain = ctx.settings.DOMAIN

    logger.info(" 3. Creating order %s...", domain)
    # identifiers are case-insensitive; the configured spelling names the bundle
    order = ctx.engine.new_order(state["account"], [domain.lower()])
    logger.debug("Order %s created with %d authorization(s)", order.order_url, len(order.authorization_urls))
    return {"order": order}
