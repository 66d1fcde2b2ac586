"""Playbook definitions: catalog, matching and YAML loading."""

from responder.playbook.catalog import PlaybookCatalog
from responder.playbook.loader import PlaybookLoader
from responder.playbook.matcher import Matcher

__all__ = ["PlaybookCatalog", "PlaybookLoader", "Matcher"]
