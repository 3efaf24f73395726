"""Version reconciliation against the server-side run history."""

from analysis_spine.versions.reconciler import VersionReconciler

__all__ = ["VersionReconciler"]
