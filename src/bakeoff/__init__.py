"""
bakeoff - Model comparison experiment orchestration.

Plan a models x profiles x runs comparison, advance it one task per call,
and rank the models when the results are in.
"""

from bakeoff.executor import StepOutcome, abort_experiment, advance_one
from bakeoff.plan import build_queue, create_plan
from bakeoff.scoring import compute_leaderboard, get_results

__version__ = "0.1.0"
__all__ = [
    "StepOutcome",
    "__version__",
    "abort_experiment",
    "advance_one",
    "build_queue",
    "compute_leaderboard",
    "create_plan",
    "get_results",
]
