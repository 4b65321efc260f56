"""Type aliases for callbacks used across layers."""

from collections.abc import Awaitable, Callable

from .models import PublishError, PublishOutcome, PublishRequest

# Invoked for every failed async publish; may be sync or async
ErrorHandler = Callable[[PublishError, PublishRequest], Awaitable[None] | None]

# Receive side of a transport: (correlation_token, outcome)
OutcomeCallback = Callable[[str, PublishOutcome], Awaitable[None]]
