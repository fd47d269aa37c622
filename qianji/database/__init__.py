"""SQLite persistence and deduplicating import."""
