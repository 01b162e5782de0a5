"""Corporate filings acquisition engine for NSE-listed companies."""

__version__ = "0.1.0"
