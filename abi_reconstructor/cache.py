"""Result caches keyed by (lowercased address, chain id).

Unverified results expire after ``max_age`` seconds, verified ones never do.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

from .consts import CACHE_MAX_AGE
from .fields import CacheRecord, ReconstructionResult

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, int]


def cache_key(address: str, chain_id: int) -> CacheKey:
    return (address.lower(), int(chain_id))


class ResultCache:
    def get(self, address: str, chain_id: int) -> Optional[ReconstructionResult]:
        raise NotImplementedError

    def put(self, address: str, chain_id: int, result: ReconstructionResult, verified: bool = False) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class InMemoryResultCache(ResultCache):
    def __init__(self, max_age: float = CACHE_MAX_AGE, clock: Callable[[], float] = time.time) -> None:
        self.max_age = max_age
        self.clock = clock
        self._records: Dict[CacheKey, CacheRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def record(self, address: str, chain_id: int) -> Optional[CacheRecord]:
        return self._records.get(cache_key(address, chain_id))

    def get(self, address: str, chain_id: int) -> Optional[ReconstructionResult]:
        record = self.record(address, chain_id)
        if record is None:
            return None
        if not record.is_fresh(self.clock(), self.max_age):
            logger.debug(f'Cached result for {address} on chain {chain_id} is stale')
            return None
        return record.result

    def put(self, address: str, chain_id: int, result: ReconstructionResult, verified: bool = False) -> None:
        key = cache_key(address, chain_id)
        self._records[key] = CacheRecord(key[0], key[1], result, self.clock(), verified)

    def clear(self) -> None:
        self._records = {}


class JsonFileResultCache(InMemoryResultCache):
    """In-memory cache mirrored to one JSON file, rewritten atomically on every put."""

    def __init__(self, path: Union[str, Path], max_age: float = CACHE_MAX_AGE,
                 clock: Callable[[], float] = time.time) -> None:
        super().__init__(max_age, clock)
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
            records = [CacheRecord.from_dict(r) for r in data.get('records', [])]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f'Ignoring unreadable cache file {self.path}: {e}')
            return
        self._records = {(r.address, r.chain_id): r for r in records}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + '.tmp')
        payload = {'records': [r.to_dict() for r in self._records.values()]}
        tmp.write_text(json.dumps(payload, indent=2), encoding='utf-8')
        os.replace(tmp, self.path)

    def put(self, address: str, chain_id: int, result: ReconstructionResult, verified: bool = False) -> None:
        super().put(address, chain_id, result, verified)
        self._save()

    def clear(self) -> None:
        super().clear()
        if self.path.exists():
            self.path.unlink()
