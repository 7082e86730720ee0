"""predmarket - prediction market browser, proposal flow and metadata service."""

__version__ = "0.1.0"
