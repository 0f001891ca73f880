"""claimloop - lease-based claim/execute engine for content-generation workers"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.engine import (
    BatchExecutor,
    BatchReport,
    Claimer,
    LockSweeper,
    PollLoop,
    TaskProcessor,
    build_poll_loop,
)
from .core.errors import (
    ClaimloopError,
    ConfigurationError,
    ErrorCode,
    MultipleValidationErrors,
    RegistryError,
)
from .core.generation import (
    Completion,
    GenerationError,
    GenerationRequest,
    GenerativeClient,
    OpenAIGenerativeClient,
    ServiceFault,
    UsageTracker,
)
from .core.models.config import EngineConfig, GenerationConfig, StoreConfig
from .core.models.resilience import StoreResilienceConfig
from .core.models.rows import ClaimedRow, RowCounts, TableSpec
from .core.store import PostgresTaskStore, TaskStore
from .core.tasks.base import (
    ChunkRejected,
    ItemRejected,
    ResponseFormat,
    RowVerdict,
    TaskType,
)
from .core.tasks.registry import TaskRegistry
from .core.types.status import PollState, RowState

__all__ = [
    'BatchExecutor',
    'BatchReport',
    'ChunkRejected',
    'ClaimedRow',
    'ClaimloopError',
    'Claimer',
    'Completion',
    'ConfigurationError',
    'EngineConfig',
    'ErrorCode',
    'GenerationConfig',
    'GenerationError',
    'GenerationRequest',
    'GenerativeClient',
    'ItemRejected',
    'LockSweeper',
    'MultipleValidationErrors',
    'OpenAIGenerativeClient',
    'PollLoop',
    'PollState',
    'PostgresTaskStore',
    'RegistryError',
    'ResponseFormat',
    'RowCounts',
    'RowState',
    'RowVerdict',
    'ServiceFault',
    'StoreConfig',
    'StoreResilienceConfig',
    'TableSpec',
    'TaskProcessor',
    'TaskRegistry',
    'TaskStore',
    'TaskType',
    'UsageTracker',
    'build_poll_loop',
]
