"""
Resilient client for the gallery data API.
"""

__version__ = "1.0.0"
