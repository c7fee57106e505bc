"""
Flux Digest Backend

A FastAPI backend for AI digests of Miniflux subscriptions.
Provides digest generation, scheduled delivery and webhook push.
"""

__version__ = "1.0.0"
