"""
Certificate Store - Durable Certificate State

Owns every user and server certificate record. Records are only mutated
through the store's own operations; callers always receive copies.

Persistence is a single JSON document written atomically: the whole store
is serialized to ``<path>.tmp`` and renamed over ``<path>``, so the file on
disk is always a complete previous or complete new version.

Concurrency: an in-process reader/writer lock guards the records. Separate
processes sharing one store file are not coordinated; deployments are
expected to run a single writer at a time.
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from pydantic import ValidationError

from ..errors import CorruptStoreError, NotFoundError, StoreWriteError
from ..utils.files import atomic_write
from .models import (
    CertificateRecord,
    RecordKind,
    ServerCertificate,
    StoreDocument,
    utcnow,
)

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Shared/exclusive lock. Not reentrant for writers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class CertificateStore:
    """
    Persistent mapping ``name -> CertificateRecord`` for users and servers.

    Features:
    - Load-or-create from a JSON file
    - Snapshot reads (deep copies)
    - Serial and expiry always updated together
    - Atomic save via temporary file + rename
    """

    def __init__(self, path: Union[str, Path], document: Optional[StoreDocument] = None):
        self.path = Path(path)
        self._doc = document or StoreDocument()
        self._lock = ReadWriteLock()

    # === Loading ===

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CertificateStore":
        """
        Load the store from ``path``.

        A missing file yields an empty store that is persisted immediately,
        so the next load always finds a valid document.

        Raises:
            CorruptStoreError: file exists but cannot be read or parsed
            StoreWriteError: a fresh store could not be written
        """
        path = Path(path)

        if not path.exists():
            logger.info(f"Store file {path} does not exist, creating an empty store")
            store = cls(path)
            store.save()
            return store

        try:
            raw = path.read_bytes()
        except OSError as e:
            raise CorruptStoreError(str(path), f"unreadable ({e.strerror or e})") from e

        try:
            document = StoreDocument.model_validate_json(raw)
        except ValidationError as e:
            raise CorruptStoreError(str(path), f"{e.error_count()} validation error(s)") from e
        except UnicodeDecodeError as e:
            raise CorruptStoreError(str(path), f"not valid UTF-8 ({e.reason})") from e

        store = cls(path, document)
        logger.info(
            f"Loaded store {path}: users={len(document.users)}, servers={len(document.servers)}"
        )
        return store

    # === Metadata ===

    @property
    def version(self) -> str:
        with self._lock.read():
            return self._doc.metadata.version

    @property
    def last_updated(self) -> Optional[datetime]:
        with self._lock.read():
            return self._doc.metadata.last_updated

    # === Records ===

    def _collection(self, kind: RecordKind) -> Dict[str, CertificateRecord]:
        return self._doc.users if RecordKind(kind) is RecordKind.USER else self._doc.servers

    def get(self, kind: RecordKind, name: str) -> Optional[CertificateRecord]:
        """Return a copy of the record, or None if absent."""
        with self._lock.read():
            record = self._collection(kind).get(name)
            return record.model_copy(deep=True) if record is not None else None

    def put(self, record: CertificateRecord) -> None:
        """Insert or replace a record by name (last write wins)."""
        stored = record.model_copy(deep=True)
        with self._lock.write():
            self._collection(record.kind)[record.name] = stored
        logger.info(f"Stored {record.kind.value[:-1]} certificate {record.name} (serial={record.serial_number})")

    def update_certificate(
        self,
        kind: RecordKind,
        name: str,
        /,
        serial_number: str,
        expires_at: datetime,
        now: Optional[datetime] = None,
        **fields,
    ) -> CertificateRecord:
        """
        Replace the active certificate of an existing record.

        Serial and expiry change in one mutation, together with any extra
        record ``fields`` (PEM material, ttl, email, device address).
        ``last_renewed_at`` is stamped whenever the serial changes. A server
        record's stored private key is cleared on a serial change unless a
        new one is supplied, since it belonged to the previous certificate.
        ``kind`` and ``name`` are positional-only; a ``name`` keyword lands in
        ``fields`` and is rejected.
        """
        now = now or utcnow()
        with self._lock.write():
            collection = self._collection(kind)
            current = collection.get(name)
            if current is None:
                raise NotFoundError(name, RecordKind(kind).value)

            rejected = (set(fields) - set(type(current).model_fields)) | (
                {"name", "created_at", "last_renewed_at"} & set(fields)
            )
            if rejected:
                raise ValueError(f"Cannot update fields {sorted(rejected)} of {name}")

            update = dict(fields, serial_number=serial_number, expires_at=expires_at)
            if serial_number != current.serial_number:
                update["last_renewed_at"] = now
                if isinstance(current, ServerCertificate):
                    update.setdefault("private_key_pem", None)

            updated = type(current).model_validate({**current.model_dump(), **update})
            collection[name] = updated

        logger.info(f"Updated certificate for {name}: serial={serial_number}, expires={expires_at.date()}")
        return updated.model_copy(deep=True)

    def delete(self, kind: RecordKind, name: str) -> None:
        """Remove a record; raises NotFoundError if absent."""
        with self._lock.write():
            collection = self._collection(kind)
            if name not in collection:
                raise NotFoundError(name, RecordKind(kind).value)
            del collection[name]
        logger.info(f"Deleted {RecordKind(kind).value[:-1]} certificate {name}")

    def list_all(self, kind: RecordKind) -> Dict[str, CertificateRecord]:
        """Snapshot copy of a collection, safe to iterate while others mutate."""
        with self._lock.read():
            return {name: record.model_copy(deep=True) for name, record in self._collection(kind).items()}

    def check_expiry(
        self,
        kind: RecordKind,
        name: str,
        threshold_days: float,
        now: Optional[datetime] = None,
    ) -> Tuple[bool, float]:
        """
        Returns (needs_renewal, days_remaining).

        ``days_remaining = (expires_at - now) / 24h``; renewal is needed when
        it is strictly below ``threshold_days``.
        """
        with self._lock.read():
            record = self._collection(kind).get(name)
            if record is None:
                raise NotFoundError(name, RecordKind(kind).value)
            days_remaining = record.days_remaining(now)
        return days_remaining < threshold_days, days_remaining

    # === Persistence ===

    def save(self) -> None:
        """
        Serialize the whole store and atomically replace the backing file.

        Raises:
            StoreWriteError: the temporary file could not be written or renamed
        """
        with self._lock.write():
            metadata = self._doc.metadata.model_copy(update={"last_updated": utcnow()})
            document = self._doc.model_dump(mode="json")
            document["metadata"] = metadata.model_dump(mode="json")
            try:
                atomic_write(self.path, json.dumps(document, indent=2) + "\n", mode=0o600)
            except OSError as e:
                raise StoreWriteError(str(self.path), e.strerror or str(e)) from e
            # Only a persisted save moves the timestamp
            self._doc.metadata = metadata
        logger.debug(f"Store saved to {self.path}")
