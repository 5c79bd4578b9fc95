"""
Task service API access.
"""

from webclipper.core.api.client import ApiClient, server_message

__all__ = ["ApiClient", "server_message"]
