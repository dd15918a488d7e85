"""Domain layer: models, events, errors and the execution primitives."""
