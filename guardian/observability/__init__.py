"""
Observability module for the Guardian Intel AI layer.

Structured logging with per-request correlation ids.
"""
