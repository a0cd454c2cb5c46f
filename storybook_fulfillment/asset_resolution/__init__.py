"""
Asset resolution for book rendering inputs.
"""

from .resolver import AssetResolver, ResolvedAsset

__all__ = ["AssetResolver", "ResolvedAsset"]
