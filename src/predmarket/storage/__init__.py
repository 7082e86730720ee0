"""DuckDB-backed metadata storage and the market image store."""
