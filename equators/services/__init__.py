"""External services: persistence."""
