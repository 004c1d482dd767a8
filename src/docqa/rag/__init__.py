"""Query-time RAG stages: retrieval, prompt construction, generation."""
