"""Application layer: cache services, attribution and import orchestration."""
