# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync Handle Registry - Live table instances behind opaque handles.

Instances live in an arena of slots. A handle is (slot index, slot
generation); releasing a slot bumps its generation, so a stale handle can
never reach whatever instance later reuses the slot.

The registry lock covers slot bookkeeping only. Opening storage happens
before the lock is taken and closing storage after it is released, so a
slow disk never blocks other handles from being created or looked up.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Type, TypeVar

import structlog

from snapsync.config import DbEngineType, HostType, SyncConfig, default_config_for
from snapsync.errors import (
    explain_invalid_enum,
    explain_invalid_handle,
    explain_missing_schema,
    explain_missing_storage_path,
    explain_storage_in_use,
)
from snapsync.exceptions import InvalidArgumentError, InvalidHandleError
from snapsync.schema import Schema, parse_schema
from snapsync.storage import StorageEngine, open_storage
from snapsync.transaction import TransactionCoordinator

logger = structlog.get_logger()

LogSink = Callable[[str], None]
E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class Handle:
    """Opaque, generation-checked reference to a registered instance."""

    index: int
    generation: int

    def __str__(self) -> str:
        return f"{self.index}.{self.generation}"

    @classmethod
    def parse(cls, text: str) -> "Handle":
        """Parse the "<index>.<generation>" form produced by str()."""
        try:
            index, generation = (int(part) for part in str(text).split("."))
        except ValueError:
            raise InvalidHandleError(explain_invalid_handle(text)) from None
        if index < 0 or generation < 1:
            raise InvalidHandleError(explain_invalid_handle(text))
        return cls(index=index, generation=generation)


class Instance:
    """One synchronized table: schema, storage, coordinator and log sink."""

    def __init__(
        self,
        host_type: HostType,
        engine_type: DbEngineType,
        storage_path: str,
        schema: Schema,
        engine: StorageEngine,
        config: SyncConfig,
        log_sink: Optional[LogSink] = None,
    ):
        self.host_type = host_type
        self.engine_type = engine_type
        self.storage_path = storage_path
        self.schema = schema
        self.engine = engine
        self.config = config
        self.log_sink = log_sink
        self.coordinator = TransactionCoordinator(schema, engine, config)

        # Identity of the physical table; in-memory storage is private to the handle
        self.storage_key: Optional[Tuple[str, str]] = None
        if engine_type != DbEngineType.MEMORY:
            self.storage_key = (str(Path(storage_path).resolve()), schema.table.lower())

    def log(self, message: str) -> None:
        """Forward a failure message to the log sink, if one is attached."""
        if not message or self.log_sink is None:
            return
        try:
            self.log_sink(message)
        except Exception as e:
            logger.warning("log_sink_failed", table=self.schema.table, error=str(e))

    def close(self) -> None:
        self.engine.close()


@dataclass
class _Slot:
    generation: int = 1
    instance: Optional[Instance] = None


def coerce_enum(enum_type: Type[E], value, name: str) -> E:
    """Accept an enum member or its value; anything else is InvalidArgumentError."""
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        raise InvalidArgumentError(
            explain_invalid_enum(name, value, [member.value for member in enum_type])
        ) from None


class HandleRegistry:
    """Process-wide table of live instances."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: List[_Slot] = []
        self._free: List[int] = []

    def initialize(
        self,
        host_type,
        engine_type,
        storage_path: Optional[str],
        schema_ddl: Optional[str],
        *,
        config: Optional[SyncConfig] = None,
        log_sink: Optional[LogSink] = None,
    ) -> Handle:
        """
        Create an instance and register it under a fresh handle.

        Args:
            host_type: HostType (or its value)
            engine_type: DbEngineType (or its value)
            storage_path: Database path
            schema_ddl: Table declaration
            config: Storage settings; defaults to default_config_for(host_type)
            log_sink: Optional callable receiving failure messages

        Returns:
            The new handle

        Raises:
            InvalidArgumentError: If a required argument is missing or invalid,
                or another live handle already owns the stored table
            SchemaError: If the declaration is invalid
            StorageError: If the backend cannot be opened
        """
        if not storage_path:
            raise InvalidArgumentError(explain_missing_storage_path())
        if not schema_ddl or not str(schema_ddl).strip():
            raise InvalidArgumentError(explain_missing_schema())
        host = coerce_enum(HostType, host_type, "host_type")
        engine_kind = coerce_enum(DbEngineType, engine_type, "engine_type")

        schema = parse_schema(schema_ddl)
        settings = config or default_config_for(host)
        engine = open_storage(engine_kind, str(storage_path), schema, settings)

        instance = Instance(
            host_type=host,
            engine_type=engine_kind,
            storage_path=str(storage_path),
            schema=schema,
            engine=engine,
            config=settings,
            log_sink=log_sink,
        )
        try:
            handle = self._register(instance)
        except InvalidArgumentError:
            instance.close()
            raise

        logger.info(
            "handle_initialized",
            handle=str(handle),
            table=schema.table,
            host_type=host.value,
            engine_type=engine_kind.value,
            path=str(storage_path),
        )
        return handle

    def lookup(self, handle: Handle) -> Instance:
        """
        Resolve a handle.

        Raises:
            InvalidHandleError: If the handle is unknown, released or stale
        """
        if not isinstance(handle, Handle):
            raise InvalidHandleError(explain_invalid_handle(handle))
        with self._lock:
            if 0 <= handle.index < len(self._slots):
                slot = self._slots[handle.index]
                if slot.generation == handle.generation and slot.instance is not None:
                    return slot.instance
        raise InvalidHandleError(explain_invalid_handle(handle))

    def attach_log_sink(self, handle: Handle, sink: Optional[LogSink]) -> None:
        """Attach (or with None, detach) the handle's log sink."""
        self.lookup(handle).log_sink = sink

    def release(self, handle: Handle) -> None:
        """
        Close and unregister one instance.

        Raises:
            InvalidHandleError: If the handle is unknown, released or stale
        """
        instance = self.lookup(handle)
        with self._lock:
            slot = self._slots[handle.index]
            if slot.instance is not instance:
                raise InvalidHandleError(explain_invalid_handle(handle))
            slot.instance = None
            slot.generation += 1
            self._free.append(handle.index)
        instance.close()
        logger.info("handle_released", handle=str(handle), table=instance.schema.table)

    def teardown(self) -> None:
        """Close every instance and empty the registry. Safe to call repeatedly."""
        with self._lock:
            instances = []
            for index, slot in enumerate(self._slots):
                if slot.instance is not None:
                    instances.append(slot.instance)
                    slot.instance = None
                    slot.generation += 1
                    self._free.append(index)

        for instance in instances:
            try:
                instance.close()
            except Exception as e:
                logger.warning(
                    "storage_close_failed", table=instance.schema.table, error=str(e)
                )

        logger.info("registry_teardown_complete", released=len(instances))

    def handles(self) -> List[Handle]:
        with self._lock:
            return [
                Handle(index=index, generation=slot.generation)
                for index, slot in enumerate(self._slots)
                if slot.instance is not None
            ]

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for slot in self._slots if slot.instance is not None)

    def _register(self, instance: Instance) -> Handle:
        with self._lock:
            if instance.storage_key is not None:
                for index, slot in enumerate(self._slots):
                    if slot.instance is not None and slot.instance.storage_key == instance.storage_key:
                        raise InvalidArgumentError(
                            explain_storage_in_use(
                                instance.storage_path,
                                instance.schema.table,
                                Handle(index=index, generation=slot.generation),
                            ),
                            details={"path": instance.storage_key[0], "table": instance.schema.table},
                        )
            if self._free:
                index = self._free.pop()
                slot = self._slots[index]
            else:
                index = len(self._slots)
                slot = _Slot()
                self._slots.append(slot)
            slot.instance = instance
            return Handle(index=index, generation=slot.generation)


# Process-wide registry used by snapsync.api
default_registry = HandleRegistry()
