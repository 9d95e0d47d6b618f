"""Bundled data files for scratchctl."""
