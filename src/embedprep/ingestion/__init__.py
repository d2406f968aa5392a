"""
Embedding queue processing

- Queue worker use case: one item from content fetch to persisted vectors
- Dispatcher: lease-based claiming and concurrent processing of items
- Monitoring: queue counts, throughput, error logs and quality metrics
"""

from .dispatcher import DispatchSummary, QueueDispatcher
from .monitoring import QueueMonitor
from .queue_worker import PreprocessUseCase, PreprocessUseCaseInput, PreprocessUseCaseOutput

__all__ = [
    'PreprocessUseCase',
    'PreprocessUseCaseInput',
    'PreprocessUseCaseOutput',
    'QueueDispatcher',
    'DispatchSummary',
    'QueueMonitor',
]
