"""
Client module for wallet-driven token purchases.

Provides the wallet session state machine and the orchestrator that
sequences connect, approval and purchase for one user.
"""

from .session import Session, WalletSession
from .orchestrator import ActionResult, ActionStatus, SessionOrchestrator, SessionStatus

__all__ = [
    "Session",
    "WalletSession",
    "ActionResult",
    "ActionStatus",
    "SessionOrchestrator",
    "SessionStatus",
]
