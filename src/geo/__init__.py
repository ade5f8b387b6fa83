"""
Pure geospatial helpers: distance, speed, geofences, routes, movement analytics.
"""
