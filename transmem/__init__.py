"""Translation memory and job synchronization engine."""

__version__ = "0.1.0"
