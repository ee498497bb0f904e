"""Rate-limited generation pipeline.

Transcript events flow through a single parse/dispatch worker that owns the
cooldown clock, then through two single-slot generation stages (prompt, image)
before the finished image is pushed to connected viewers.
"""
