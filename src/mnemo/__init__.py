"""
Mnemo - persistent memory and skill-learning engine for AI agents.

Package structure:
- core: Config, logging, domain events, background scheduler
- memory: Memory store, hybrid recall, semantic index, consolidation
- skills: Skill progression, decay, dependency gating, achievements
- engine: Context object wiring everything together
"""

__version__ = "0.1.0"
