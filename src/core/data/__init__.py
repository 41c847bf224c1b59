"""
Static data for the installer.

The command catalog (``catalog.py``) holds the per-distribution command
sequences for every install phase::

    from src.core.data.catalog import build_package

    pkg = build_package("bootstrap", config)
"""
