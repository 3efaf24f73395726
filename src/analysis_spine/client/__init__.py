"""HTTP client for the remote analysis services."""

from analysis_spine.client.remote import RemoteJobClient

__all__ = ["RemoteJobClient"]
