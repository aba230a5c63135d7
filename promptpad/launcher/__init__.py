"""Launcher core: codec, ranking, interaction state machine and storage."""
