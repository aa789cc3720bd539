"""
Problem service API.

Tracks reported problems and assigns each one to the least-loaded
qualified technician.
"""

__version__ = "0.1.0"
