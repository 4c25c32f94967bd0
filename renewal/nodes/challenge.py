"""
challenge_fulfiller node — prove control of the domain over HTTP-01.

  1. Take the order's first authorization and its http-01 challenge
  2. Write the key-authorization to <CHALLENGE_PATH>/<token>
  3. Ask the CA to validate, re-asking every poll interval while pending
  4. valid → continue; invalid → ValidationFailure; still pending after
     max_attempts validation calls → ValidationTimeout
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from langchain_core.runnables import RunnableConfig

from acme_client.engine import AcmeEngine
from acme_client.http_challenge import remove_challenge_file, write_challenge_file
from acme_client.models import ChallengeResult, OrderHandle
from renewal.context import get_context
from renewal.errors import ValidationFailure, ValidationTimeout
from renewal.state import RenewalState

logger = logging.getLogger(__name__)

PENDING_STATES = frozenset({"pending", "processing"})


def fulfill_challenge(
    order: OrderHandle,
    engine: AcmeEngine,
    challenge_path: str,
    poll_interval: float = 10.0,
    max_attempts: int = 0,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[ChallengeResult, int]:
    """
    Drive the challenge of *order* to a terminal state.

    *max_attempts* bounds the number of validation calls; 0 polls until the CA
    answers valid or invalid.  Returns (final_result, validation_calls).
    """
    domain = order.domains[0]
    logger.info(" 4. Validating domain %s...", domain)

    authorization = engine.get_authorizations(order)[0]
    challenge = engine.get_http_challenge(authorization)

    logger.info(" 5. Writing challenge file")
    artifact = write_challenge_file(challenge_path, challenge.key_authorization)
    logger.debug("Challenge artifact written to %s", artifact)

    try:
        result = engine.validate_challenge(challenge)
        attempts = 1
        while result.status in PENDING_STATES:
            if max_attempts and attempts >= max_attempts:
                raise ValidationTimeout(domain, attempts)
            sleep(poll_interval)
            result = engine.validate_challenge(challenge)
            attempts += 1
    finally:
        remove_challenge_file(challenge_path, challenge.key_authorization)

    if result.status == "valid":
        logger.info(" 6. Domain %s is valid!", domain)
        return result, attempts

    logger.info(" 6. Domain %s is NOT valid! %s", domain, result.error_detail or "")
    raise ValidationFailure(domain, result.error_detail)


def challenge_fulfiller(state: RenewalState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    result, attempts = fulfill_challenge(
        state["order"],
        ctx.engine,
        ctx.settings.CHALLENGE_PATH,
        poll_interval=ctx.settings.CHALLENGE_POLL_INTERVAL,
        max_attempts=ctx.settings.CHALLENGE_MAX_ATTEMPTS,
        sleep=ctx.sleep,
    )
    return {"challenge_result": result, "validation_attempts": attempts}
