"""
Common utilities for bw-alfred.

Modules:
- bw_cli: adapter around the Bitwarden `bw` command-line client
- cache: named, timestamped cache markers on disk
- favicons: favicon downloads for login URIs
- feedback: Alfred result items and fuzzy filtering
- jobs: detached background jobs tracked by pid file
- system: macOS `open` and Alfred re-search helpers
"""

__all__ = [
    "bw_cli",
    "cache",
    "favicons",
    "feedback",
    "jobs",
    "system",
]
