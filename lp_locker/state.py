"""
Write-buffered ledger state.

All locker state (config record, rate-guard entries, token ledgers, pool
reserves) lives in LevelDB under the STATE_PREFIX namespace. Operations never
write to the database directly: they run against a StateView that buffers
every write, and the view is flushed in one atomic batch only when the whole
operation succeeds. A failed operation simply drops its view, so nothing it
touched (including the AMM router's own bookkeeping) is ever observable.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Optional, Iterator

import msgpack

from lp_locker.crypto import generate_hash
from lp_locker.db import DB

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STATE_PREFIX = b'state:'

_DELETED = object()


class StateView:
    """Pending changes of one operation layered over the committed state."""

    def __init__(self, store: 'StateStore'):
        self.store = store
        self._writes = {}
        self._raw = {}

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._writes:
            value = self._writes[key]
            return None if value is _DELETED else value
        return self.store.get(key)

    def set(self, key: bytes, value: bytes):
        self._writes[key] = value

    def delete(self, key: bytes):
        self._writes[key] = _DELETED

    def get_doc(self, key: bytes) -> Optional[dict]:
        """Decode a msgpack document, None if absent."""
        encoded = self.get(key)
        if encoded is None:
            return None
        return msgpack.unpackb(encoded, raw=False)

    def set_doc(self, key: bytes, doc: dict):
        self.set(key, msgpack.packb(doc, use_bin_type=True))

    def set_raw(self, key: bytes, value: bytes):
        """Write a key outside the state namespace in the same batch."""
        self._raw[key] = value

    @property
    def pending_keys(self) -> list[bytes]:
        return sorted(self._writes)

    def commit(self):
        """Flush buffered writes to the database in a single batch."""
        if not self._writes and not self._raw:
            return
        with self.store.db.write_batch() as batch:
            for key in sorted(self._writes):
                value = self._writes[key]
                if value is _DELETED:
                    batch.delete(STATE_PREFIX + key)
                else:
                    batch.put(STATE_PREFIX + key, value)
            for key, value in self._raw.items():
                batch.put(key, value)
        logger.debug(f"Committed {len(self._writes)} state writes")
        self.discard()

    def discard(self):
        self._writes.clear()
        self._raw.clear()


class StateStore:
    """
    Owner of the committed ledger state and of the lock that serializes
    every operation against it.
    """

    def __init__(self, db: DB):
        self.db = db
        self.lock = threading.RLock()
        self._active: Optional[StateView] = None

    def get(self, key: bytes) -> Optional[bytes]:
        return self.db.get(STATE_PREFIX + key)

    def get_doc(self, key: bytes) -> Optional[dict]:
        encoded = self.get(key)
        if encoded is None:
            return None
        return msgpack.unpackb(encoded, raw=False)

    @contextmanager
    def transaction(self) -> Iterator[StateView]:
        """
        Run one operation as a critical section.

        Yields a StateView; the view is committed if the block exits normally
        and discarded if it raises. Nested calls on the same thread join the
        outer transaction.
        """
        with self.lock:
            if self._active is not None:
                yield self._active
                return

            view = StateView(self)
            self._active = view
            try:
                yield view
            except Exception:
                logger.debug(f"Discarding {len(view.pending_keys)} pending writes")
                view.discard()
                raise
            else:
                view.commit()
            finally:
                self._active = None

    def items(self, prefix: bytes = b'') -> list[tuple[bytes, bytes]]:
        """Committed (key, value) pairs, keys without the state namespace."""
        strip = len(STATE_PREFIX)
        return [(k[strip:], v) for k, v in self.db.get_prefix(STATE_PREFIX + prefix)]

    def state_root(self) -> bytes:
        """Keccak-256 commitment over every committed key and value."""
        with self.lock:
            entries = [[k, v] for k, v in self.items()]
        return generate_hash(msgpack.packb(entries, use_bin_type=True))
