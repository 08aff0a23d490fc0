from __future__ import annotations

import copy
import datetime as dt
import json
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger

from .errors import StorageError

Record = Dict[str, Any]

PRODUCTS = "products"
QUOTES = "quotes"
SETTINGS = "settings"
MESSAGES = "messages"


class RecordStore(Protocol):
    """Generic CRUD over named collections of JSON-shaped records.

    Records carry ``id``, ``created_at`` and ``is_deleted``; ``list`` returns
    most recently created first.
    """

    def list(self, collection: str, deleted: Optional[bool] = False, where: Optional[Record] = None) -> List[Record]: ...

    def get_by_id(self, collection: str, record_id: str) -> Optional[Record]: ...

    def insert(self, collection: str, record: Record) -> str: ...

    def update(self, collection: str, record_id: str, patch: Record) -> None: ...

    def update_if(self, collection: str, record_id: str, expected: Record, patch: Record) -> bool: ...

    def soft_delete(self, collection: str, record_id: str) -> None: ...

    def restore(self, collection: str, record_id: str) -> None: ...

    def hard_delete(self, collection: str, record_id: str) -> None: ...


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _matches(record: Record, where: Optional[Record]) -> bool:
    if not where:
        return True
    return all(record.get(k) == v for k, v in where.items())


class MemoryRecordStore:
    """Dict-backed store. ``JsonRecordStore`` adds persistence on top."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()

    # Persistence hooks
    def _collection(self, name: str) -> Dict[str, Record]:
        return self._data.setdefault(name, {})

    def _flush(self, name: str) -> None:
        pass

    def list(self, collection: str, deleted: Optional[bool] = False, where: Optional[Record] = None) -> List[Record]:
        with self._lock:
            rows = [
                copy.deepcopy(r)
                for r in self._collection(collection).values()
                if (deleted is None or bool(r.get("is_deleted")) == deleted) and _matches(r, where)
            ]
        rows.sort(key=lambda r: (r.get("created_at") or "", r.get("_seq", 0)), reverse=True)
        return [{k: v for k, v in r.items() if k != "_seq"} for r in rows]

    def get_by_id(self, collection: str, record_id: str) -> Optional[Record]:
        with self._lock:
            row = self._collection(collection).get(record_id)
            if row is None:
                return None
            return {k: v for k, v in copy.deepcopy(row).items() if k != "_seq"}

    def insert(self, collection: str, record: Record) -> str:
        with self._lock:
            rows = self._collection(collection)
            row = copy.deepcopy(record)
            row["id"] = uuid.uuid4().hex
            row["created_at"] = row.get("created_at") or _now()
            row.setdefault("is_deleted", False)
            row["_seq"] = max((r.get("_seq", 0) for r in rows.values()), default=-1) + 1
            rows[row["id"]] = row
            try:
                self._flush(collection)
            except StorageError:
                rows.pop(row["id"], None)
                raise
        logger.debug(f"insert {collection}/{row['id']}")
        return row["id"]

    def _require(self, collection: str, record_id: str) -> Record:
        row = self._collection(collection).get(record_id)
        if row is None:
            raise StorageError(f"{collection}/{record_id} not found")
        return row

    def _patch(self, collection: str, row: Record, patch: Record) -> None:
        """Apply ``patch`` to ``row`` and flush; the row is restored if the flush fails."""
        before = copy.deepcopy(row)
        row.update({k: copy.deepcopy(v) for k, v in patch.items() if k not in ("id", "_seq")})
        try:
            self._flush(collection)
        except StorageError:
            row.clear()
            row.update(before)
            raise

    def update(self, collection: str, record_id: str, patch: Record) -> None:
        with self._lock:
            self._patch(collection, self._require(collection, record_id), patch)

    def update_if(self, collection: str, record_id: str, expected: Record, patch: Record) -> bool:
        """Apply ``patch`` only if the record currently matches ``expected``."""
        with self._lock:
            row = self._collection(collection).get(record_id)
            if row is None or not _matches(row, expected):
                return False
            self._patch(collection, row, patch)
            return True

    def soft_delete(self, collection: str, record_id: str) -> None:
        self.update(collection, record_id, {"is_deleted": True})

    def restore(self, collection: str, record_id: str) -> None:
        self.update(collection, record_id, {"is_deleted": False})

    def hard_delete(self, collection: str, record_id: str) -> None:
        with self._lock:
            rows = self._collection(collection)
            removed = rows.pop(record_id, None)
            try:
                self._flush(collection)
            except StorageError:
                if removed is not None:
                    rows[record_id] = removed
                raise
        logger.info(f"permanently deleted {collection}/{record_id}")


class JsonRecordStore(MemoryRecordStore):
    """One ``<collection>.json`` file per collection under ``root``."""

    def __init__(self, root: str | Path) -> None:
        super().__init__()
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        return self.root / f"{name}.json"

    def _collection(self, name: str) -> Dict[str, Record]:
        if name not in self._data:
            path = self._path(name)
            rows: Dict[str, Record] = {}
            if path.exists():
                try:
                    loaded = json.loads(path.read_text(encoding="utf-8")) or []
                except (OSError, ValueError) as e:
                    raise StorageError(f"cannot read {path}: {e}") from e
                for i, row in enumerate(loaded):
                    row["_seq"] = i
                    rows[row["id"]] = row
            self._data[name] = rows
        return self._data[name]

    def _flush(self, name: str) -> None:
        rows = sorted(self._data.get(name, {}).values(), key=lambda r: r.get("_seq", 0))
        payload = [{k: v for k, v in r.items() if k != "_seq"} for r in rows]
        path = self._path(name)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"cannot write {path}: {e}") from e
