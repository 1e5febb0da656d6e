"""
playlist-cleaner: clean copies of Spotify playlists, kept in sync.

A clean copy replaces every explicit track of a source playlist with a
clean (non-explicit) version of the same song and leaves out explicit
tracks that have none. Copies can be synchronized with their source on a
daily or weekly schedule.

Packages:
    - core: configuration, database, models, logging, progress bars
    - spotify: Spotify Web API client
    - matching: clean-version lookup
    - jobs: the batch job pipeline
    - sync: delta computation, sync runs and the scheduler
"""

# Version string (if updated, update also in setup.py)
__version__ = "0.1.0"
