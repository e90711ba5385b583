"""Resilient insight-generation client.

Turns health-metric requests into provider-backed insights while
surviving unreliable upstream providers.
"""

__version__ = "0.1.0"
