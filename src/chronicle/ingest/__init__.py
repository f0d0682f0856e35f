"""Chronicle ingestion: rate limiter, bounded runner, recorder, history importer."""

from chronicle.ingest.pipeline import ImportOptions, ImportReport, Importer, import_history
from chronicle.ingest.ratelimit import RateLimiter
from chronicle.ingest.recorder import Recorder
from chronicle.ingest.runner import bounded_map

__all__ = [
    "ImportOptions",
    "ImportReport",
    "Importer",
    "RateLimiter",
    "Recorder",
    "bounded_map",
    "import_history",
]
