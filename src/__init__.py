"""
Field-agent fraud detection and geolocation-integrity engine.
"""
