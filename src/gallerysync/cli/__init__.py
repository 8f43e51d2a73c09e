"""Command line interface for Gallerysync."""
