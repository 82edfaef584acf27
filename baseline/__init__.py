"""baseline: declarative compliance-policy evaluation engine.

Rules are YAML data in a profile directory. The engine loads and validates
them, resolves parameters and waivers, evaluates every rule against one
target (local, SSH or Docker) and aggregates an immutable report.
"""

__version__ = "0.1.0"

from baseline._types import (  # noqa: E402
    Applicability,
    AssertionOutcome,
    ComplianceTier,
    ExitClassification,
    Fact,
    RuleStatus,
)
from baseline.engine import load_profile, load_rules, resolve_parameters, run_profile, scan  # noqa: E402
from baseline.errors import (  # noqa: E402
    AccessorError,
    BaselineError,
    EvaluationCancelled,
    LoadError,
    LoadProblem,
    TargetConnectionError,
)
from baseline.report import Report, RuleResult  # noqa: E402
from baseline.settings import EngineSettings  # noqa: E402

__all__ = [
    "AccessorError",
    "Applicability",
    "AssertionOutcome",
    "BaselineError",
    "ComplianceTier",
    "EngineSettings",
    "EvaluationCancelled",
    "ExitClassification",
    "Fact",
    "LoadError",
    "LoadProblem",
    "Report",
    "RuleResult",
    "RuleStatus",
    "TargetConnectionError",
    "__version__",
    "load_profile",
    "load_rules",
    "resolve_parameters",
    "run_profile",
    "scan",
]
