"""streampub - Flow-controlled, acknowledgement-tracking JetStream publisher."""

from .application.publisher import Publisher, PublisherConfig
from .domain.models import DrainResult, PublishAck, PublishError, PublishExpectations
from .infrastructure.factories import PublisherFactory

__all__ = [
    "DrainResult",
    "PublishAck",
    "PublishError",
    "PublishExpectations",
    "Publisher",
    "PublisherConfig",
    "PublisherFactory",
]
__version__ = "0.1.0"
