from claimloop.core.generation.client import (
    Completion,
    GenerationError,
    GenerationRequest,
    GenerationResult,
    GenerativeClient,
    OpenAIGenerativeClient,
    ServiceFault,
    Usage,
    classify_exception,
)
from claimloop.core.generation.retry import CallBackoff, call_with_retry
from claimloop.core.generation.usage import UsageTracker, estimate_cost

__all__ = [
    'Completion',
    'GenerationError',
    'GenerationRequest',
    'GenerationResult',
    'GenerativeClient',
    'OpenAIGenerativeClient',
    'ServiceFault',
    'Usage',
    'classify_exception',
    'CallBackoff',
    'call_with_retry',
    'UsageTracker',
    'estimate_cost',
]
