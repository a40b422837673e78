from .beans import InMemoryBeanRegistry
from .config import MappingConfigSource

__all__ = [
    "InMemoryBeanRegistry",
    "MappingConfigSource",
]
