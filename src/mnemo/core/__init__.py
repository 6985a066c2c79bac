"""
Core module - configuration, logging, events, scheduling.

Components:
- config: Settings management via pydantic-settings
- logging: Structured logging setup
- events: Domain event bus (level-up, decay, achievements)
- scheduler: Interval-based background sweeps
"""

from mnemo.core.config import Settings
from mnemo.core.events import Event, EventBus, EventType

__all__ = ["Settings", "Event", "EventBus", "EventType"]
