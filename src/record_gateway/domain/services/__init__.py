"""Domain services for business logic.

Services implement domain logic that doesn't naturally fit within a single
entity or value object.
"""

from record_gateway.domain.services.governor import GovernorUsage, ResourceGovernor

__all__ = [
    "GovernorUsage",
    "ResourceGovernor",
]
