"""Read-only queries over the projected graph."""

from .impact import IMPACT_RULES, ImpactQueryService

__all__ = ["IMPACT_RULES", "ImpactQueryService"]
