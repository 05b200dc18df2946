"""Documents and their per-document indexing status."""
