"""
Response Cache - content-keyed cache of generated responses.

Keys are a digest of the model hint plus the last three ``role:content``
pairs of the prompt context, so two conversations that reach the same
context share an entry.

Policies:
- TTL checked on every read; an expired entry is deleted and counted as a miss
- capacity bound with insertion-order eviction (not access order); rewriting
  an existing key counts as a fresh insertion
- responses shorter than ``MIN_RESPONSE_LENGTH`` are never cached
"""
import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from hypo.core.logging_config import get_logger

logger = get_logger(__name__)

PromptMessages = Sequence[Dict[str, str]]

KEY_WINDOW = 3
SIMILARITY_WINDOW = 2
MIN_RESPONSE_LENGTH = 10


@dataclass
class CacheEntry:
    key: str
    response: str
    inserted_at: float
    ttl: float
    model: str
    hit_count: int = 0
    context: str = ""
    conversation_id: Optional[str] = None
    hint: str = "auto"

    def age(self, now: float) -> float:
        return now - self.inserted_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) >= self.ttl


@dataclass(frozen=True)
class CacheHit:
    """What a successful lookup returns."""
    response: str
    hit_count: int
    model: str
    similarity: Optional[float] = None

    @property
    def from_cache(self) -> bool:
        return True


def _similarity_words(text: str) -> set:
    return {w for w in text.split(" ") if len(w) > 3}


def jaccard_similarity(text1: str, text2: str) -> float:
    """Jaccard index over the words longer than three characters."""
    words1 = _similarity_words(text1)
    words2 = _similarity_words(text2)
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


class ResponseCache:
    """
    Process-wide response cache, safe for concurrent get/set.

    Example:
        >>> cache = ResponseCache(max_size=100, default_ttl=300)
        >>> cache.set(context, "A helpful answer", model="auto")
        True
        >>> cache.get(context, model="auto").response
        'A helpful answer'
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hit_count = 0
        self.miss_count = 0

        logger.info(f"ResponseCache initialized: max_size={max_size}, ttl={default_ttl}s")

    @staticmethod
    def key(messages: PromptMessages, model: str = "auto") -> str:
        """
        Deterministic 16-hex-char key for ``(model, last 3 messages)``.
        """
        recent = list(messages)[-KEY_WINDOW:]
        context = "|".join(f"{m.get('role', '')}:{m.get('content', '')}" for m in recent)
        key_string = f"{model}:{context}".lower()
        return hashlib.md5(key_string.encode("utf-8")).hexdigest()[:16]

    @staticmethod
    def similarity_context(messages: PromptMessages) -> str:
        recent = list(messages)[-SIMILARITY_WINDOW:]
        return " ".join(m.get("content", "").lower() for m in recent)

    def get(self, messages: PromptMessages, model: str = "auto") -> Optional[CacheHit]:
        """
        Look up a live entry.

        Returns:
            CacheHit, or None on a miss (including an expired entry, which
            is removed)
        """
        key = self.key(messages, model)
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()

            if entry is not None and not entry.is_expired(now):
                entry.hit_count += 1
                self.hit_count += 1
                logger.info(f"Cache HIT for key: {key} ({model}) (hits: {entry.hit_count})")
                return CacheHit(entry.response, entry.hit_count, entry.model)

            if entry is not None:
                del self._entries[key]
                logger.debug(f"Removed expired cache entry: {key}")

            self.miss_count += 1
            return None

    def set(
        self,
        messages: PromptMessages,
        response: str,
        model: str = "auto",
        ttl: Optional[float] = None,
        conversation_id: Optional[str] = None,
        model_used: Optional[str] = None,
    ) -> bool:
        """
        Store a response.

        ``model`` is the hint the key is built from; ``model_used`` is the
        concrete model that produced ``response`` and is what hits report.

        Returns:
            False when the response is too short to be worth caching
        """
        if not response or len(response) < MIN_RESPONSE_LENGTH:
            return False

        key = self.key(messages, model)
        entry = CacheEntry(
            key=key,
            response=response,
            inserted_at=self._clock(),
            ttl=ttl if ttl is not None else self.default_ttl,
            model=model_used or model,
            context=self.similarity_context(messages),
            conversation_id=conversation_id,
            hint=model,
        )

        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                oldest_key, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted oldest cache entry: {oldest_key}")
            self._entries[key] = entry

        logger.debug(f"Cached response for key: {key} ({model}) ({len(response)} chars)")
        return True

    def find_similar(
        self,
        messages: PromptMessages,
        threshold: float = 0.7,
        model: Optional[str] = None,
    ) -> Optional[CacheHit]:
        """
        Best-effort fuzzy lookup: first live entry whose stored context has
        Jaccard similarity above ``threshold``. Iteration follows insertion
        order but callers must not rely on which of several matches wins.
        """
        current = self.similarity_context(messages)
        with self._lock:
            now = self._clock()
            for key, entry in self._entries.items():
                if entry.is_expired(now):
                    continue
                if model is not None and entry.hint != model:
                    continue
                similarity = jaccard_similarity(current, entry.context)
                if similarity > threshold:
                    entry.hit_count += 1
                    self.hit_count += 1
                    logger.info(f"Found similar cache: {key} (similarity: {similarity:.2f})")
                    return CacheHit(entry.response, entry.hit_count, entry.model, similarity)
        return None

    def invalidate_conversation(self, conversation_id: str) -> int:
        """Drop every entry written on behalf of ``conversation_id``."""
        with self._lock:
            keys = [k for k, e in self._entries.items() if e.conversation_id == conversation_id]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(f"Invalidated {len(keys)} cache entries for {conversation_id}")
        return len(keys)

    def cleanup(self) -> int:
        """Remove every entry whose age reached its own ttl."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {size} cached items")

    def keys(self) -> List[str]:
        """Live keys in insertion order (oldest first)."""
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict:
        with self._lock:
            size = len(self._entries)
            hits, misses = self.hit_count, self.miss_count
        total = hits + misses
        hit_rate = round(hits / total * 100, 2) if total else 0.0
        return {
            "size": size,
            "max_size": self.max_size,
            "hit_count": hits,
            "miss_count": misses,
            "hit_rate": f"{hit_rate}%",
            "total_requests": total,
        }
