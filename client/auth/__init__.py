"""
Authentication package for the Chat Auth Client.

This package contains credential storage and token management, including
the shared in-flight refresh guard used by the API client.
"""
