"""
Top‑level package for the Emergency Repair24 API.

This file makes ``repair24_api`` a Python package so that modules
within ``app`` can be imported using fully qualified names like
``repair24_api.app.main``.  The package provides no public exports;
all functionality lives in submodules under ``app``.
"""

__all__ = []
