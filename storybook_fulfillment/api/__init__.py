"""
HTTP surface: provider webhooks and order endpoints.
"""
