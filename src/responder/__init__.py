"""Responder: incident playbook matching and execution engine."""

__version__ = "0.3.0"
