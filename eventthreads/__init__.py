"""EventThreads: short-lived interest threads with gated membership and chat."""

__version__ = "0.1.0"
