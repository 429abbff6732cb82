"""
Portfolio tracker with a remotely synchronized JSON document and an offline cache.
"""

__version__ = "0.1.0"
