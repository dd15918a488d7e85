"""Protocols for the external collaborators consumed by the engine."""
