"""Live chat feed kept in sync with the AT Protocol firehose."""

__version__ = "0.1.0"
