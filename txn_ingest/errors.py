from __future__ import annotations

"""Base exception for the ingestion path.

Concrete errors are defined next to the code that raises them (reader, db,
services) and derive from IngestionError so the pipeline can treat every
fatal condition uniformly.
"""

__all__ = [
    "IngestionError",
]


class IngestionError(Exception):
    """Fatal condition that terminates an ingestion run."""
