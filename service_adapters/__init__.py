"""Configuration-driven factories for Redis, mail and PDF clients."""
