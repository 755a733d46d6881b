"""
Portfolio pricing backend.

Multi-source price resolution, caching and analytics for tracked assets.
"""

__version__ = "1.0.0"
