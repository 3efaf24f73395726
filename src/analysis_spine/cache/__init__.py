"""Result cache."""

from analysis_spine.cache.store import ResultStore

__all__ = ["ResultStore"]
