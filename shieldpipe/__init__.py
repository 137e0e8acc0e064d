"""Fee-adjusted relayer/self-signed submission pipeline for shielded-pool transfers."""

__version__ = "0.1.0"
