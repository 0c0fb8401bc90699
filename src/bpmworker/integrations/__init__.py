"""HTTP clients for external services."""

from bpmworker.integrations.remote_jobs import (
    IngestClient,
    IprClient,
    ProfilerClient,
    RemoteJobClient,
)
from bpmworker.integrations.search_index import SearchIndexClient, statistics_query

__all__ = [
    "IngestClient",
    "IprClient",
    "ProfilerClient",
    "RemoteJobClient",
    "SearchIndexClient",
    "statistics_query",
]
