"""Role-based access control for the scheduling core."""

from medibook.authorization.policy import (
    Decision,
    Operation,
    PolicyEngine,
    appointment_visibility,
)

__all__ = [
    "Decision",
    "Operation",
    "PolicyEngine",
    "appointment_visibility",
]
