"""
Chart metadata: readers, on-disk cache and the in-memory catalog.
"""
