"""Inverted index backend: schema, analyzers, query tree, SQLite storage."""
