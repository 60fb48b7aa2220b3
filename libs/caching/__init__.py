"""
In-process caching primitives.

- Keyed mutex for single-flight generation
- TTL answer cache (system prompts, conversation histories, web enhancements)
- Local mirror of provider-side context caches
"""

from libs.caching.answer_cache import AnswerCache, TTLCache
from libs.caching.context_cache import ContextCache, UpstreamCacheRecord
from libs.caching.keyed_mutex import KeyedMutex

__all__ = ["AnswerCache", "ContextCache", "KeyedMutex", "TTLCache", "UpstreamCacheRecord"]
