"""
Client package for communicating with the MinuteMaster API server.
"""

from .api_client import APIClient, APIError

__all__ = ["APIClient", "APIError"]
