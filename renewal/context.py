"""Access to the run-scoped collaborators passed to every graph node."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from langchain_core.runnables import RunnableConfig

from acme_client.engine import AcmeEngine
from config import Settings


@dataclass(frozen=True)
class RenewalContext:
    settings: Settings
    engine: AcmeEngine
    sleep: Callable[[float], None] = time.sleep


def run_config(context: RenewalContext) -> RunnableConfig:
    return {"configurable": {"renewal_context": context}}


def get_context(config: RunnableConfig) -> RenewalContext:
    return config["configurable"]["renewal_context"]
