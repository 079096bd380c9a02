"""rib: read EPUB books in the browser from a bounded local library."""

__version__ = "0.3.0"
