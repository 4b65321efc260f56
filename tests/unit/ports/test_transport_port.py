"""Tests for the transport port interface."""

import pytest

from streampub.ports.transport import PublishTransportPort


class TestPublishTransportPort:
    """The port is abstract and minimal."""

    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            PublishTransportPort()

    def test_partial_implementation_rejected(self):
        class SendOnly(PublishTransportPort):
            async def send(self, request):
                pass

        with pytest.raises(TypeError):
            SendOnly()

    @pytest.mark.asyncio
    async def test_complete_implementation(self):
        class Loopback(PublishTransportPort):
            def __init__(self):
                self.callback = None

            @property
            def is_started(self):
                return self.callback is not None

            async def start(self, on_outcome):
                self.callback = on_outcome

            async def send(self, request):
                pass

            async def close(self):
                self.callback = None

        transport = Loopback()
        await transport.start(lambda token, outcome: None)

        assert transport.is_started
        await transport.close()
        assert not transport.is_started
