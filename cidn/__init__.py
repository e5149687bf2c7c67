"""Chunked blob transfer: resource models and strategies, a chunk runner, resumable SHA-256 and web UI events."""

__version__ = "0.1.0"