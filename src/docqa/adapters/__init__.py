"""Embedder, vector store and generator implementations."""
