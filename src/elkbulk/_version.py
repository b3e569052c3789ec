"""
Package version, read by hatch at build time.

Release builds bump this value; source checkouts keep the local default.
"""

__version__ = "0.0.0+local"
