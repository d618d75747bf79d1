"""
Lon/lat boxes, tile math and the shapely-backed geometry engine.
"""
