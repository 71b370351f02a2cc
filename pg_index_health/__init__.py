"""pg-index-health: cluster-aware PostgreSQL index and schema diagnostics."""

__version__ = "0.1.0"
