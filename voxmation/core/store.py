"""
Document Store Adapter

A mapping from collection name to an ordered list of typed entities,
each identified by a unique string id. Every mutation happens inside a
transaction: writes become visible together when the outermost
transaction commits, an exception rolls all collections back to the
snapshot taken on entry, and observers receive exactly one StoreChange
per committed transaction.

Backends:
- InMemoryDocumentStore: process-local, used by tests and the demo
- JsonFileDocumentStore: the whole database persisted as one JSON
  document, last write wins
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional, Union
from uuid import uuid4
import json
import logging
import threading

from .entities import Collection, Entity, entity_type
from .exceptions import InvalidRecordError, StoreError

logger = logging.getLogger(__name__)

CollectionName = Union[str, Collection]


@dataclass(frozen=True)
class StoreChange:
    """Notification broadcast after a committed batch of mutations."""
    collections: frozenset = field(default_factory=frozenset)
    timestamp: datetime = field(default_factory=datetime.now)

    def touched(self, name: CollectionName) -> bool:
        return Collection(name) in self.collections


StoreObserver = Callable[[StoreChange], None]


class DocumentStore(ABC):
    """
    Abstract document store consumed by the automation engine.

    Reads return copies; callers change stored state only through
    insert, update_by_id and delete_by_id.
    """

    @abstractmethod
    def get_collection(self, name: CollectionName) -> list:
        """All entities of a collection, in insertion order."""
        pass

    @abstractmethod
    def get_by_id(self, name: CollectionName, entity_id: str) -> Optional[Entity]:
        """Entity by id, or None when absent."""
        pass

    @abstractmethod
    def insert(self, name: CollectionName, record: Union[Mapping, Entity]) -> Entity:
        """Validate and append a record, generating an id when it has none."""
        pass

    @abstractmethod
    def update_by_id(self, name: CollectionName, entity_id: str, changes: Mapping) -> Optional[Entity]:
        """Merge field changes into an entity. No-op when the id is absent."""
        pass

    @abstractmethod
    def delete_by_id(self, name: CollectionName, entity_id: str) -> bool:
        """Remove an entity. Returns False when the id is absent."""
        pass

    @abstractmethod
    def transaction(self):
        """Context manager grouping writes into one atomic, notified batch."""
        pass

    @abstractmethod
    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        """Register an observer; returns a callable that unregisters it."""
        pass


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local document store.

    Transactions hold a re-entrant lock, so handler read-modify-write
    sequences are serialised across threads.
    """

    def __init__(self, data: Optional[Mapping] = None):
        self._collections: dict[Collection, list] = {c: [] for c in Collection}
        self._observers: list[StoreObserver] = []
        self._lock = threading.RLock()
        self._depth = 0
        self._pending: set = set()
        self._snapshot: Optional[dict] = None

        if data:
            self._load(data)

    def _load(self, data: Mapping) -> None:
        """Replace contents from a name -> list-of-records mapping."""
        for name, records in data.items():
            try:
                collection = Collection(name)
            except ValueError:
                logger.debug("Ignoring unknown collection %r", name)
                continue
            cls = entity_type(collection)
            self._collections[collection] = [
                self._with_id(cls.from_record(record)) for record in records or []
            ]

    @staticmethod
    def _with_id(entity: Entity) -> Entity:
        if not entity.id:
            entity.id = f"{entity.id_prefix}-{uuid4().hex[:8]}"
        return entity

    def _items(self, name: CollectionName) -> list:
        return self._collections[entity_type(name).collection]

    def _index_of(self, items: list, entity_id: str) -> Optional[int]:
        for position, item in enumerate(items):
            if item.id == entity_id:
                return position
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_collection(self, name: CollectionName) -> list:
        with self._lock:
            return deepcopy(self._items(name))

    def get_by_id(self, name: CollectionName, entity_id: str) -> Optional[Entity]:
        with self._lock:
            items = self._items(name)
            position = self._index_of(items, entity_id)
            if position is None:
                return None
            return deepcopy(items[position])

    def find(self, name: CollectionName, predicate: Callable[[Entity], bool]) -> list:
        """Entities of a collection matching a predicate."""
        return [item for item in self.get_collection(name) if predicate(item)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, name: CollectionName, record: Union[Mapping, Entity]) -> Entity:
        cls = entity_type(name)
        entity = self._with_id(cls.from_record(record))
        with self.transaction():
            items = self._items(name)
            if self._index_of(items, entity.id) is not None:
                raise InvalidRecordError(cls.collection.value, f"duplicate id '{entity.id}'")
            items.append(entity)
            self._pending.add(cls.collection)
        return deepcopy(entity)

    def update_by_id(self, name: CollectionName, entity_id: str, changes: Mapping) -> Optional[Entity]:
        cls = entity_type(name)
        with self.transaction():
            items = self._items(name)
            position = self._index_of(items, entity_id)
            if position is None:
                logger.debug("update_by_id: %s/%s not found", cls.collection.value, entity_id)
                return None
            merged = {**items[position].as_fields(), **dict(changes), "id": entity_id}
            items[position] = cls.from_record(merged)
            self._pending.add(cls.collection)
            return deepcopy(items[position])

    def delete_by_id(self, name: CollectionName, entity_id: str) -> bool:
        cls = entity_type(name)
        with self.transaction():
            items = self._items(name)
            position = self._index_of(items, entity_id)
            if position is None:
                return False
            del items[position]
            self._pending.add(cls.collection)
            return True

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDocumentStore"]:
        with self._lock:
            outer = self._depth == 0
            if outer:
                # Entities are replaced, never mutated in place, so
                # shallow list copies are a complete snapshot.
                self._snapshot = {c: list(items) for c, items in self._collections.items()}
                self._pending = set()
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outer:
                    self._collections = self._snapshot
                    self._snapshot = None
                    self._pending = set()
                    logger.debug("Transaction rolled back")
                raise
            self._depth -= 1
            if not outer:
                return

            changed = frozenset(self._pending)
            try:
                if changed:
                    self._on_commit(changed)
            except BaseException:
                self._collections = self._snapshot
                raise
            finally:
                self._snapshot = None
                self._pending = set()

        if changed:
            self._notify(StoreChange(collections=changed))

    def _on_commit(self, changed: frozenset) -> None:
        """Hook for persistent backends, called under the lock."""
        pass

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, change: StoreChange) -> None:
        for observer in list(self._observers):
            observer(change)

    def dump(self) -> dict:
        """Whole database as JSON-safe records."""
        with self._lock:
            return {
                collection.value: [item.to_record() for item in items]
                for collection, items in self._collections.items()
            }


class JsonFileDocumentStore(InMemoryDocumentStore):
    """
    Document store persisted as a single JSON document.

    The file is read once on construction and rewritten after every
    committed transaction.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(self._read())

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read store file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Store file {self.path} does not hold a JSON object")
        return data

    def _on_commit(self, changed: frozenset) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(self.dump(), handle, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
        except OSError as e:
            raise StoreError(f"Cannot write store file {self.path}: {e}") from e
        logger.debug("Persisted %s to %s", sorted(c.value for c in changed), self.path)
