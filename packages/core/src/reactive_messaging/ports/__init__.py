from .beans import IBeanRegistry
from .codec import IPayloadCodec
from .config import IConfigSource
from .connectors import IIncomingConnectorFactory, IOutgoingConnectorFactory
from .streams import IPublisher, ISubscriber

__all__ = [
    "IBeanRegistry",
    "IConfigSource",
    "IIncomingConnectorFactory",
    "IOutgoingConnectorFactory",
    "IPayloadCodec",
    "IPublisher",
    "ISubscriber",
]
