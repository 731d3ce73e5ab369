"""Feed ingestion for the static model site: videos, profile and cached images."""

from .ingest import IngestionOrchestrator, IngestionResult, RunOutcome

__all__ = ["IngestionOrchestrator", "IngestionResult", "RunOutcome"]
