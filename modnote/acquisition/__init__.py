"""
Content acquisition: source classification, extraction strategies and the
orchestrator that escalates through them.
"""

from modnote.acquisition.metadata import MetadataFetcher, create_metadata_fetcher
from modnote.acquisition.orchestrator import AcquisitionOrchestrator, create_orchestrator
from modnote.acquisition.sources import from_bytes, from_input, from_path, from_url

__all__ = [
    "AcquisitionOrchestrator",
    "MetadataFetcher",
    "create_metadata_fetcher",
    "create_orchestrator",
    "from_bytes",
    "from_input",
    "from_path",
    "from_url",
]
