"""In-memory chunks produced from extracted documents."""
