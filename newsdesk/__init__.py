"""newsdesk - article summarization, event clustering, aggregation and merging."""

__version__ = "0.1.0"
