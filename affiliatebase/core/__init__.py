"""Settings, logging, database and shared helpers."""
