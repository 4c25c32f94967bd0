"""
RenewalSupervisor — the outer supervision loop.

Each cycle runs the renewal graph once.  ``run_cycle()`` never raises: it
returns a CycleResult holding either the outcome or the error, and
``run_forever()`` logs a failed cycle and carries on after the configured
delay.  Transient and permanent errors are treated the same way.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from acme_client import jws as jwslib
from acme_client.engine import AcmeEngine
from config import Settings
from renewal.context import RenewalContext, run_config
from renewal.graph import build_graph, initial_state

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    renewed: bool = False
    not_after: str = ""
    account_key_pem: Optional[str] = None
    account_created: bool = False
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RenewalSupervisor:
    def __init__(
        self,
        settings: Settings,
        engine: AcmeEngine,
        sleep: Callable[[float], None] = time.sleep,
        graph=None,
    ) -> None:
        self.settings = settings
        self._context = RenewalContext(settings=settings, engine=engine, sleep=sleep)
        self._sleep = sleep
        self._graph = graph or build_graph()
        self.account_key_pem = self._initial_account_key()

    def _initial_account_key(self) -> Optional[str]:
        if self.settings.ACCOUNT_KEY:
            return self.settings.ACCOUNT_KEY
        if self.settings.ACCOUNT_KEY_PATH:
            pem = jwslib.load_account_key(self.settings.ACCOUNT_KEY_PATH)
            if pem:
                logger.info("Loaded account key from %s", self.settings.ACCOUNT_KEY_PATH)
            return pem
        return None

    def run_cycle(self) -> CycleResult:
        """Run one expiry check and, when due, one full renewal."""
        final: dict = {}
        try:
            # stream keeps the last state reached, so an account created before
            # a later failure is not lost
            for final in self._graph.stream(
                initial_state(account_key_pem=self.account_key_pem),
                config=run_config(self._context),
                stream_mode="values",
            ):
                pass
        except Exception as exc:
            return CycleResult(
                account_key_pem=final.get("account_key_pem") or self.account_key_pem,
                account_created=bool(final.get("account_created")),
                error=exc,
            )

        renewed = bool(final.get("renewed"))
        return CycleResult(
            renewed=renewed,
            not_after=(final.get("issued_not_after") if renewed else final.get("not_after")) or "",
            account_key_pem=final.get("account_key_pem") or self.account_key_pem,
            account_created=bool(final.get("account_created")),
        )

    def handle_result(self, result: CycleResult) -> None:
        if result.account_created and result.account_key_pem:
            self._remember_account_key(result.account_key_pem)

        if result.error is not None:
            logger.error(" X. ERROR %s", result.error, exc_info=result.error)
            return

        if result.renewed:
            logger.info("Certificate for %s renewed (expires %s)", self.settings.DOMAIN, result.not_after or "?")

    def _remember_account_key(self, pem: str) -> None:
        self.account_key_pem = pem
        path = self.settings.ACCOUNT_KEY_PATH
        if not path:
            logger.warning(
                "New ACME account key is kept in memory only; set ACCOUNT_KEY_PATH to reuse it after a restart"
            )
            return
        try:
            jwslib.save_account_key(pem, path)
            logger.info("Saved account key to %s", path)
        except OSError as exc:
            logger.error("Could not save account key to %s: %s", path, exc)

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """
        Supervise until the process is terminated.  *max_cycles* stops the
        loop after that many cycles (tests, --once).
        """
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            self.handle_result(self.run_cycle())
            cycles += 1
            self._sleep(self.settings.delay_seconds)
