"""scratchctl - Age-based cleanup of shared scratch filesystems.

Recursively identifies directories whose entire content is old enough,
quarantines them by renaming, and removes them in a second, rate-limited
pass driven by a durable work log.
"""

__version__ = "1.0.0"
