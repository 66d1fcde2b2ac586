"""Core services for Responder."""
