"""
koharu - upstream update and backup tool for astro-koharu blog checkouts.

This package keeps a customized checkout in sync with its upstream template:
it detects local modifications, backs up user content before merging, merges
upstream history and reports conflicts, and restores earlier backups.
"""

__version__ = "0.1.0"
