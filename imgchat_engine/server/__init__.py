"""Viewer-facing HTTP/WebSocket server."""
