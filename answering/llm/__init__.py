"""Generative provider abstraction and response handling."""

from .provider import (
    CachedContextInfo,
    ContentTurn,
    FileSearchTool,
    GenerativeProvider,
    StoreInfo,
    WebSearchTool,
    history_to_turns,
)

__all__ = [
    "CachedContextInfo",
    "ContentTurn",
    "FileSearchTool",
    "GenerativeProvider",
    "StoreInfo",
    "WebSearchTool",
    "history_to_turns",
]
