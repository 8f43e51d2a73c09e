"""Collaborator clients for Gallerysync."""

from .base import DestinationHost, SourceStore
from .drive import DriveSourceStore
from .wordpress import WordPressHost

__all__ = ["DestinationHost", "DriveSourceStore", "SourceStore", "WordPressHost"]
