"""Infrastructure layer: cache store, upstream client, persistence and observability."""
