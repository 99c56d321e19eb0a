"""Pure balancing engine for the stat balancer.

This package contains deterministic, testable computations over in-memory
configuration values: formula evaluation, the constraint solver, archetype
generation, round-robin tournaments, stat utility and valuation, weight advice
and the auto-balance loop.
It must not import Django or perform any database I/O.
"""

from .autobalance import run_auto_balance_session
from .solver import solve_config_change
from .tournament import run_all_tiers, run_round_robin

__all__ = ["run_all_tiers", "run_auto_balance_session", "run_round_robin", "solve_config_change"]
