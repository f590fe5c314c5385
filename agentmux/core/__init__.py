"""Core process supervision: models, events, session identity, configuration."""
