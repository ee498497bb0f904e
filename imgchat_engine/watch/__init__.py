"""Filesystem change detection and incremental transcript reads."""
