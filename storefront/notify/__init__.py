"""Live notifications: client stream registry and cross-process pub/sub."""
