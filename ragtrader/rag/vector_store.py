"""Strategy store with hashed bag-of-words fingerprints and cosine search"""

import json
import logging
import math
import os
import re
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ragtrader.models import StrategyRecord
from ragtrader.utils.errors import PersistenceError

logger = logging.getLogger(__name__)

DIMENSIONS = 128
MIN_SIMILARITY = 0.1
_TOKEN_RE = re.compile(r"[a-z0-9]+")


def string_hash(token: str) -> int:
    """Non-negative 32-bit ``h = h * 31 + ord(c)`` string hash."""
    h = 0
    for ch in token:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def fingerprint(text: str) -> List[float]:
    """
    Map text to an L2-normalized 128-bucket token count vector

    Tokens are lowercase alphanumeric runs longer than two characters. Text
    without such tokens gives the zero vector.
    """
    vector = [0.0] * DIMENSIONS
    for token in _TOKEN_RE.findall(str(text).lower()):
        if len(token) > 2:
            vector[string_hash(token) % DIMENSIONS] += 1.0

    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0 for mismatched lengths or zero vectors."""
    if len(a) != len(b):
        return 0.0

    dot = mag_a = mag_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        mag_a += x * x
        mag_b += y * y

    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (math.sqrt(mag_a) * math.sqrt(mag_b))


class VectorStore:
    """
    Append-only strategy log with similarity search

    Records live in memory and in a JSON Lines file, one record per line.
    Every ``add`` appends and fsyncs its line before returning.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._records: List[StrategyRecord] = []
        self._lock = threading.Lock()
        self._last_id = 0
        self.load()

    def __len__(self) -> int:
        return len(self._records)

    def load(self) -> None:
        """Reload the log from disk; an unreadable log leaves the store empty."""
        records: List[StrategyRecord] = []
        try:
            if self.path.exists():
                with open(self.path, encoding="utf-8") as f:
                    for line in f:
                        if line.strip():
                            records.append(StrategyRecord.from_dict(json.loads(line)))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"⚠️  Failed to load strategy store {self.path}: {e}. Starting empty.")
            records = []

        with self._lock:
            self._records = records
            self._last_id = max((self._numeric_id(r.id) for r in records), default=0)

        if records:
            logger.info(f"📚 Loaded {len(records)} strategies from {self.path}")

    @staticmethod
    def _numeric_id(record_id: str) -> int:
        try:
            return int(record_id)
        except ValueError:
            return 0

    def _next_id(self) -> str:
        candidate = time.time_ns()
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def add(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Append a strategy and persist it

        Returns:
            The new record id

        Raises:
            PersistenceError: If the durable write fails. The record stays
                in memory and is still returned by searches.
        """
        with self._lock:
            record = StrategyRecord(
                id=self._next_id(),
                text=str(text),
                fingerprint=fingerprint(text),
                metadata=dict(metadata or {}),
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            self._records.append(record)
            try:
                self._append_line(record)
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"❌ Failed to persist strategy {record.id}: {e}")
                raise PersistenceError(f"Failed to persist strategy {record.id}: {e}", str(self.path)) from e

        logger.info(f"💾 Strategy {record.id} added to store ({len(self._records)} total)")
        return record.id

    def _append_line(self, record: StrategyRecord) -> None:
        line = json.dumps(record.to_dict()) + "\n"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())

    def search_similar(self, query: str, k: int = 5) -> List[Tuple[StrategyRecord, float]]:
        """
        Top-k stored strategies by cosine similarity to ``query``

        Results with similarity <= 0.1 are dropped. Ties keep insertion order.
        """
        if k <= 0:
            return []

        query_vector = fingerprint(query)
        with self._lock:
            snapshot = list(self._records)

        scored = []
        for record in snapshot:
            similarity = cosine_similarity(query_vector, record.fingerprint)
            if similarity > MIN_SIMILARITY:
                scored.append((record, similarity))

        # sorted() is stable, so equal scores stay in insertion order
        scored = sorted(scored, key=lambda pair: pair[1], reverse=True)[:k]
        logger.debug(f"Strategy search: {len(scored)} results for {len(query)}-char query")
        return scored

    def all_strategies(self) -> List[StrategyRecord]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        """Drop every record and truncate the log."""
        with self._lock:
            self._records = []
            try:
                if self.path.exists():
                    with open(self.path, "w", encoding="utf-8") as f:
                        f.flush()
                        os.fsync(f.fileno())
            except OSError as e:
                raise PersistenceError(f"Failed to clear strategy store: {e}", str(self.path)) from e
        logger.info("🧹 Strategy store cleared")
