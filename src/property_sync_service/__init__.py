"""
Synchronizes real-estate listings from a third-party API into a local store.
"""

__version__ = "0.1.0"
