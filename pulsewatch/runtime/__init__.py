"""Cycle orchestration for pulsewatch."""

from .collector import Collector, CycleParams
from .loop import AppState, CollectionLoop, StateHolder

__all__ = ["AppState", "CollectionLoop", "Collector", "CycleParams", "StateHolder"]
