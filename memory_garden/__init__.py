"""Memory Garden: sort ingested memories into keep / compress / low relevance / delete buckets."""

__version__ = "0.1.0"
