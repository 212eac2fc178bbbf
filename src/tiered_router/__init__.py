"""
Tiered task routing and specialist consultation engine.

This package contains:
- complexity: eight-dimension complexity scoring from rule tables
- classifier: tier selection, confidence and reasoning
- specialists / registry: tier-tagged specialists and their lookup
- handoff: escalation packages between tiers
- quality: recommendation quality gate
- store / learning: consultation cache, outcome log and threshold proposals
- engine: consultation pipeline and the TieredRoutingEngine facade
"""

from .engine import TieredRoutingEngine, create_engine
from .models import ExecutionResult, ExecutionStatus, RoutingDecision, Task, Tier

__all__ = [
    'TieredRoutingEngine',
    'create_engine',
    'ExecutionResult',
    'ExecutionStatus',
    'RoutingDecision',
    'Task',
    'Tier',
]
