"""
Log Correlation API Package

This package contains the HTTP and WebSocket surface of the correlation core.
"""

from .server import create_app

__all__ = ['create_app']
