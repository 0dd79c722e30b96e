"""Traveler Engine: configuration, errors, logging, sessions, request context, dispatch."""

from traveler.engine.config import TravelerConfig, load_config  # noqa: F401
from traveler.engine.context import Principal  # noqa: F401
from traveler.engine.dispatch import BestEffortDispatcher  # noqa: F401

__all__ = [
    "BestEffortDispatcher",
    "Principal",
    "TravelerConfig",
    "load_config",
]
