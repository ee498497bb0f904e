"""Transcript parsing."""
