"""Corex - AI pair programmer with a bounded, auditable tool loop."""

__version__ = "0.1.0"

from corex_agent.config import Config
from corex_agent.orchestrator import Orchestrator, TurnResult, TurnState

__all__ = ["Config", "Orchestrator", "TurnResult", "TurnState", "__version__"]
