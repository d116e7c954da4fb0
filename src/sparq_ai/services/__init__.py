"""Service layer: model routing and rate limiting."""
