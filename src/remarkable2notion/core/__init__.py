"""Core synchronization engine: export index, notebook scanning and upserts."""
