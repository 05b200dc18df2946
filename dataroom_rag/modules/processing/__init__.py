"""Document extraction and chunking stage of the indexing pipeline."""
