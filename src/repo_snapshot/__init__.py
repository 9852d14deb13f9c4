"""Token-counted repository snapshots for LLM consumption."""

__version__ = "0.1.0"
