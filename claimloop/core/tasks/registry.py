# claimloop/core/tasks/registry.py
from __future__ import annotations

from typing import Dict, Iterator, MutableMapping

from claimloop.core.errors import ErrorCode, RegistryError
from claimloop.core.logging import get_logger
from claimloop.core.tasks.base import TaskType

logger = get_logger('registry')


class NotRegistered(RegistryError, KeyError):
    """Raised when a task type name is not present in the registry.

    Inherits from KeyError so MutableMapping.__contains__ works correctly
    (it catches KeyError to implement the ``in`` operator).
    """

    def __init__(self, task_name: str, known: list[str] | None = None) -> None:
        notes = [f"requested task type: '{task_name}'"]
        if known:
            notes.append(f"registered: {', '.join(sorted(known))}")
        RegistryError.__init__(
            self,
            message=f"task type '{task_name}' not registered",
            code=ErrorCode.TASK_NOT_REGISTERED,
            notes=notes,
            help_text='run `claimloop list` to see the available task types',
        )
        self.task_name = task_name


class DuplicateTaskNameError(RegistryError):
    """Raised when two task types claim the same name."""

    def __init__(self, task_name: str, context: str = '') -> None:
        super().__init__(
            message=f"duplicate task type name '{task_name}'",
            code=ErrorCode.TASK_DUPLICATE_NAME,
            notes=[context] if context else [],
            help_text='each task type name must be unique within a registry',
        )
        self.task_name = task_name


class TaskRegistry(MutableMapping[str, TaskType]):
    """Registry mapping task type name -> task type instance.

    Registering the same class twice under one name is a no-op (re-import);
    a different class under a taken name raises DuplicateTaskNameError.
    """

    def __init__(self, initial: Dict[str, TaskType] | None = None) -> None:
        self._data: Dict[str, TaskType] = {}
        for task in (initial or {}).values():
            self.register(task)

    def __getitem__(self, key: str) -> TaskType:
        try:
            return self._data[key]
        except KeyError:
            raise NotRegistered(key, list(self._data))

    def __setitem__(self, key: str, value: TaskType) -> None:
        if key in self._data:
            raise DuplicateTaskNameError(key, 'detected via direct assignment')
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def register(self, task: TaskType) -> TaskType:
        name = task.name
        existing = self._data.get(name)
        if existing is not None:
            if type(existing) is type(task):
                return existing
            raise DuplicateTaskNameError(
                name,
                f'{type(existing).__qualname__} already registered under this name',
            )
        self._data[name] = task
        logger.debug(f'registered task type {name!r} ({type(task).__qualname__})')
        return task

    def unregister(self, name: str) -> None:
        self._data.pop(name, None)

    def keys_list(self) -> list[str]:
        return sorted(self._data)
