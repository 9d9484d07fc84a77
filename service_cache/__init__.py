"""
Cache service package: caching and distributed coordination over Redis.
"""
