"""docqa: retrieval-augmented question answering over crawled documentation."""
