"""Cost-aware cache load generator."""
