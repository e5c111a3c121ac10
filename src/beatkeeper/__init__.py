"""beatkeeper: save Spotify tracks shared in Slack threads to the mentioner's library."""

__version__ = "0.1.0"
