"""Perform one destructive action through the adapters."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from adapters.base import AdapterError, FileSystem, PackageManager, ServiceManager
from journal.types import OperationType

from .errors import ExecutionError

LOGGER = logging.getLogger("fub.workflow")

Modifier = Callable[[str], Union[bytes, str]]


class OperationExecutor:
    """Maps every operation type to an adapter call.

    FileModify needs a modifier returning the new content for a target;
    without one the target fails rather than being silently left alone.
    """

    def __init__(
        self,
        *,
        filesystem: FileSystem,
        services: ServiceManager,
        packages: PackageManager,
    ) -> None:
        self._fs = filesystem
        self._services = services
        self._packages = packages
        self._actions: Dict[OperationType, Callable[[str, Optional[Modifier]], None]] = {
            OperationType.FILE_DELETE: self._delete,
            OperationType.FILE_MODIFY: self._modify,
            OperationType.PACKAGE_REMOVE: self._remove_package,
            OperationType.SERVICE_STOP: self._stop_service,
            OperationType.DIRECTORY_CREATE: self._create_directory,
        }
        missing = set(OperationType) - set(self._actions)
        if missing:
            raise RuntimeError(f"no executor for: {sorted(item.value for item in missing)}")

    def execute(
        self,
        op_type: OperationType,
        target: str,
        *,
        operation_id: Optional[str] = None,
        modifier: Optional[Modifier] = None,
    ) -> None:
        action = self._actions[OperationType.parse(op_type)]
        try:
            action(target, modifier)
        except ExecutionError:
            raise
        except (AdapterError, OSError) as exc:
            raise ExecutionError(str(exc), target=target, operation_id=operation_id) from exc

    # ------------------------------------------------------------------
    def _delete(self, target: str, modifier: Optional[Modifier]) -> None:
        self._fs.remove(Path(target))

    def _modify(self, target: str, modifier: Optional[Modifier]) -> None:
        if modifier is None:
            raise ExecutionError(f"no new content supplied for {target}", target=target)
        content = modifier(target)
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._fs.write_bytes(Path(target), content)

    def _remove_package(self, target: str, modifier: Optional[Modifier]) -> None:
        self._packages.remove(target)

    def _stop_service(self, target: str, modifier: Optional[Modifier]) -> None:
        self._services.stop(target)

    def _create_directory(self, target: str, modifier: Optional[Modifier]) -> None:
        self._fs.make_dir(Path(target))


__all__ = ["Modifier", "OperationExecutor"]
