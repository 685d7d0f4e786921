"""Route blueprints for the web application."""

from .status import status_bp
from .jobs import jobs_bp
from .tm import tm_bp

__all__ = [
    "status_bp",
    "jobs_bp",
    "tm_bp",
]
