"""labelcatalog - label-scoped caching and artist attribution for a record-label catalog."""

__version__ = "0.1.0"
