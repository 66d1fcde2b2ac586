"""Responder command line interface."""
