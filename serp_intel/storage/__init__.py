"""Storage module for the SERP competitor intelligence pipeline."""

from serp_intel.storage.result_store import InMemoryResultStore, ResultStore

__all__ = [
    "ResultStore",
    "InMemoryResultStore",
]
