"""docqa ingest pipeline: chunker and document seeder."""

from docqa.ingest.chunker import ContentChunker
from docqa.ingest.seeder import DocumentSeeder, SeedResult, load_documents

__all__ = [
    "ContentChunker",
    "DocumentSeeder",
    "SeedResult",
    "load_documents",
]
