"""
LevelDB wrapper used as the durable backing store for the locker state.
"""
import plyvel
import logging
from typing import Optional, Iterator
from contextlib import contextmanager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 4 * 1024 * 1024,
                 max_open_files: int = 1000):
        """
        Open (or create) the LevelDB database at db_path.

        Args:
            db_path: Path to database directory
            create_if_missing: Create database if it doesn't exist
            write_buffer_size: Size of the LevelDB write buffer
            max_open_files: Maximum number of open files
        """
        self.path = db_path
        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
            )
            self._closed = False
            logger.info(f"Database opened at {db_path}")
        except Exception as e:
            logger.error(f"Failed to open database at {db_path}: {e}")
            raise

    def _ensure_open(self):
        if self._closed:
            raise RuntimeError("Database is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        """Get value by key, None if the key doesn't exist."""
        self._ensure_open()
        try:
            return self._db.get(key)
        except Exception as e:
            logger.error(f"Error reading key {key[:32]!r}: {e}")
            raise

    def put(self, key: bytes, value: bytes):
        self._ensure_open()
        try:
            self._db.put(key, value)
        except Exception as e:
            logger.error(f"Error writing key {key[:32]!r}: {e}")
            raise

    def delete(self, key: bytes):
        self._ensure_open()
        try:
            self._db.delete(key)
        except Exception as e:
            logger.error(f"Error deleting key {key[:32]!r}: {e}")
            raise

    def exists(self, key: bytes) -> bool:
        return self.get(key) is not None

    @contextmanager
    def write_batch(self):
        """
        Atomic batch of writes. Either every put/delete lands or none does.

        Example:
            with db.write_batch() as batch:
                batch.put(b'LOCKER_CONFIG', encoded)
                batch.delete(b'stale')
        """
        self._ensure_open()
        batch = self._db.write_batch(transaction=True)
        try:
            yield batch
            batch.write()
        except Exception as e:
            logger.error(f"Error in batch write: {e}")
            raise

    def iterator(self, prefix: Optional[bytes] = None) -> Iterator[tuple[bytes, bytes]]:
        """Iterate (key, value) pairs in key order, optionally under a prefix."""
        self._ensure_open()
        if prefix:
            return self._db.iterator(prefix=prefix)
        return self._db.iterator()

    def get_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        """All (key, value) pairs whose key starts with prefix."""
        with self.iterator(prefix=prefix) as it:
            return list(it)

    def close(self):
        if not self._closed:
            try:
                self._db.close()
                self._closed = True
                logger.info("Database closed")
            except Exception as e:
                logger.error(f"Error closing database: {e}")
                raise

    def is_closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
