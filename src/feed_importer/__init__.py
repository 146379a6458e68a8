"""Feed importer: scheduled RSS/Atom synchronisation into a content store."""

__version__ = "0.1.0"
