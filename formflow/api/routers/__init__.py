"""API routers for FormFlow."""

from . import submissions
from . import approvals
from . import forms
from . import plants
from . import analytics
from . import assignments
from . import health

__all__ = [
    "submissions",
    "approvals",
    "forms",
    "plants",
    "analytics",
    "assignments",
    "health",
]
