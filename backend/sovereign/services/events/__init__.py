"""Lifecycle progress events, addressed by subject id."""
from .bus import EventBus, LifecycleEvent, LifecyclePhase, Subscription

__all__ = ["EventBus", "LifecycleEvent", "LifecyclePhase", "Subscription"]
