"""Report ingestion: extraction, normalization and hand-off to the loop."""
from .service import (
    ExtractionProvider,
    IngestionService,
    build_tradeline,
    chunk_text,
    compute_metrics,
)

__all__ = [
    "ExtractionProvider",
    "IngestionService",
    "build_tradeline",
    "chunk_text",
    "compute_metrics",
]
