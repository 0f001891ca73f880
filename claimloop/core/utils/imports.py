"""
Resolving user-supplied task registries from the command line.

A locator names a module and, optionally, an attribute:

- "myproject.tasks:registry"   dotted module path (recommended)
- "myproject/tasks.py:registry" file path
- "myproject.tasks"            attribute defaults to `registry`

The caller controls sys.path; the only convenience is adding the working
directory when it holds a pyproject.toml.
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import os
import sys
from typing import Any

from claimloop.core.errors import ErrorCode, RegistryError
from claimloop.core.logging import get_logger

logger = get_logger('registry')

DEFAULT_ATTRIBUTE = 'registry'


def find_project_root(start_dir: str) -> str | None:
    """start_dir if it holds pyproject.toml, setup.cfg or setup.py; no upward search."""
    start_dir = os.path.abspath(start_dir)
    for marker in ('pyproject.toml', 'setup.cfg', 'setup.py'):
        if os.path.exists(os.path.join(start_dir, marker)):
            return start_dir
    return None


def setup_sys_path_from_cwd() -> str | None:
    cwd = os.getcwd()
    if find_project_root(cwd) and cwd not in sys.path:
        sys.path.insert(0, cwd)
        logger.debug(f'Added cwd to sys.path: {cwd}')
        return cwd
    return None


def parse_locator(locator: str) -> tuple[str, str]:
    """'pkg.mod:attr' -> ('pkg.mod', 'attr'); a missing attribute defaults to 'registry'."""
    # rpartition keeps Windows drive letters ("C:\\x.py") in the module part
    module_part, sep, attr = locator.rpartition(':')
    if not sep or not attr or os.path.sep in attr or '/' in attr:
        return (locator, DEFAULT_ATTRIBUTE)
    return (module_part, attr)


def _is_file_path(path: str) -> bool:
    return path.endswith('.py') or os.path.sep in path or '/' in path


def _synthetic_module_name(path: str) -> str:
    digest = hashlib.sha256(os.path.realpath(path).encode()).hexdigest()[:12]
    return f'claimloop_user_{digest}'


def import_file_path(file_path: str) -> Any:
    file_path = os.path.realpath(file_path)
    if not os.path.exists(file_path):
        raise FileNotFoundError(f'Module file not found: {file_path}')

    module_name = _synthetic_module_name(file_path)
    if module_name in sys.modules:
        return sys.modules[module_name]

    parent_dir = os.path.dirname(file_path)
    if parent_dir not in sys.path:
        sys.path.insert(0, parent_dir)

    spec = importlib.util.spec_from_file_location(module_name, file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f'Could not load module from path: {file_path}')
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def load_locator(locator: str) -> Any:
    """Import the module a locator names and return the attribute."""
    setup_sys_path_from_cwd()
    module_path, attr = parse_locator(locator)

    try:
        if _is_file_path(module_path):
            module = import_file_path(module_path)
        else:
            module = importlib.import_module(module_path)
    except (ImportError, FileNotFoundError) as e:
        raise RegistryError(
            message=f'cannot import task module: {module_path}',
            code=ErrorCode.TASK_INVALID_LOCATOR,
            notes=[str(e), f'sys.path: {sys.path[:5]}...'],
            help_text=(
                'use a dotted module path importable from the working directory,\n'
                'e.g. --tasks myproject.tasks:registry, or a file path like\n'
                '--tasks myproject/tasks.py:registry'
            ),
        ) from e

    try:
        return getattr(module, attr)
    except AttributeError:
        raise RegistryError(
            message=f"module '{module_path}' has no attribute '{attr}'",
            code=ErrorCode.TASK_INVALID_LOCATOR,
            notes=[f'locator: {locator}'],
            help_text='name the TaskRegistry (or TaskType) variable after the colon',
        )
