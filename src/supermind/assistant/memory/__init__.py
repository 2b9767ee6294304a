"""Long-term memory augmentation and conversation persistence."""

from .augmentation import MemoryAugmentedProvider
from .conversation import ConversationStore
from .supermemory import SupermemoryClient, SupermemoryConfig, SupermemoryError

__all__ = [
    "ConversationStore",
    "MemoryAugmentedProvider",
    "SupermemoryClient",
    "SupermemoryConfig",
    "SupermemoryError",
]
