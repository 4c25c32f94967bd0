"""
LangGraph StateGraph for one renewal cycle.

Graph topology:
  START
    → certificate_inspector
    → [conditional: still_valid → END]
    → acme_account_setup
    → order_initializer
    → challenge_fulfiller
    → certificate_issuer
    → END

Each step needs the previous step's output.  Nothing is retried inside the
graph: any exception leaves graph.invoke() and is handled by the supervisor.
"""
from __future__ import annotations

from typing import Optional

from langgraph.graph import END, START, StateGraph

from renewal.nodes.account import acme_account_setup
from renewal.nodes.certificate import certificate_issuer
from renewal.nodes.challenge import challenge_fulfiller
from renewal.nodes.inspector import certificate_inspector
from renewal.nodes.order import order_initializer
from renewal.nodes.router import renewal_router
from renewal.state import RenewalState


def build_graph():
    """
    Build and compile the renewal StateGraph.

    Returns:
        CompiledGraph ready to invoke with a run config from renewal.context.run_config().
    """
    builder = StateGraph(RenewalState)

    # ── Register nodes ────────────────────────────────────────────────────
    builder.add_node("certificate_inspector", certificate_inspector)
    builder.add_node("acme_account_setup", acme_account_setup)
    builder.add_node("order_initializer", order_initializer)
    builder.add_node("challenge_fulfiller", challenge_fulfiller)
    builder.add_node("certificate_issuer", certificate_issuer)

    # ── Edges ─────────────────────────────────────────────────────────────
    builder.add_edge(START, "certificate_inspector")
    builder.add_conditional_edges(
        "certificate_inspector",
        renewal_router,
        {
            "renewal_due": "acme_account_setup",
            "still_valid": END,
        },
    )
    builder.add_edge("acme_account_setup", "order_initializer")
    builder.add_edge("order_initializer", "challenge_fulfiller")
    builder.add_edge("challenge_fulfiller", "certificate_issuer")
    builder.add_edge("certificate_issuer", END)

    return builder.compile()


def initial_state(account_key_pem: Optional[str] = None) -> dict:
    """Build the RenewalState dict for a fresh cycle."""
    return {
        "account_key_pem": account_key_pem,
        "account_created": False,
        "account": None,
        "order": None,
        "challenge_result": None,
        "validation_attempts": 0,
        "issued_not_after": None,
        "renewed": False,
    }
