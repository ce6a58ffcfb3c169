"""
Org Insights: organization-wide GitHub metrics with bounded fan-out and caching.
"""

__version__ = "0.1.0"
