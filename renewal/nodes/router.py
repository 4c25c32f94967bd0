"""
renewal_router — conditional edge after certificate_inspector.
"""
from __future__ import annotations

from renewal.state import RenewalState


def renewal_router(state: RenewalState) -> str:
    """
    Returns: "renewal_due" | "still_valid"
    """
    return "renewal_due" if state.get("is_due") else "still_valid"
