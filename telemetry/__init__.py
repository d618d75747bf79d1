"""
Optional per-export statistics in a local DuckDB file.
"""
