"""
Ultra Roadmap Sync - API Package
================================

HTTP surface of the service.
"""
