"""
HTTP service that crops regions out of remotely hosted PDF pages.

Each request names a source PDF and a batch of page regions; every region
comes back as its own PNG, or as a per-image failure record, within a single
request deadline.
"""

__version__ = "1.0.0"
