# seriesflow/io/__init__.py
"""Collaborators around the core: loaders, streamers and layout persistence."""
