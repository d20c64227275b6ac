"""Bundled directory dataset (``seat-data.json``)."""
