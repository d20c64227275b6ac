"""
Directory Module - Display-name lookup for register numbers.
============================================================

- loaders: Primary store, bundled dataset, and remote dataset tiers
- resolver: Fallback chain with an in-process mapping cache
"""

from seatfinder.directory.loaders import (
    BundledDatasetLoader,
    DirectoryLoader,
    DirectorySnapshot,
    PrimaryStoreLoader,
    RemoteDatasetLoader,
    build_loaders,
    parse_records,
)
from seatfinder.directory.resolver import DirectoryResolver

__all__ = [
    "DirectoryLoader",
    "DirectorySnapshot",
    "PrimaryStoreLoader",
    "BundledDatasetLoader",
    "RemoteDatasetLoader",
    "build_loaders",
    "parse_records",
    "DirectoryResolver",
]
