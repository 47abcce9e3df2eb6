"""Cross-cutting domain primitives (exception hierarchy)."""
