"""
Tests for the PSSession lifecycle.
"""

import asyncio
import time
from unittest.mock import MagicMock

import pytest

from fakes import FakeChannelFactory
from psclient.application.session import PSSession, open_session
from psclient.domain.connection import ConnectionDescriptor
from psclient.domain.errors import InvalidConnectionError, OperationCancelledError, TransportError
from psclient.infrastructure.settings import ClientSettings


class TestPSSession:
    """Test cases for PSSession open/close."""

    def setup_method(self):
        """Set up test fixtures."""
        self.factory = FakeChannelFactory()
        self.session = PSSession(ClientSettings(), channel_factory=self.factory)
        self.descriptor = ConnectionDescriptor.create_local()

    def teardown_method(self):
        """Clean up test fixtures."""
        self.session.close()

    def test_new_session_is_closed(self):
        assert not self.session.is_open
        assert self.session.channel is None
        assert self.session.host is None
        assert self.session.descriptor is None

    def test_open_binds_channel_and_host(self):
        self.session.open(self.descriptor)

        assert self.session.is_open
        assert self.session.channel is self.factory.channel
        assert self.session.host is not None
        assert self.session.descriptor == self.descriptor

    def test_open_none_descriptor(self):
        with pytest.raises(InvalidConnectionError):
            self.session.open(None)

    def test_reopen_closes_previous_state(self):
        self.session.open(self.descriptor)
        first_channel = self.session.channel
        first_host = self.session.host

        self.session.open(self.descriptor)

        assert first_channel.close_calls == 1
        assert self.session.channel is not first_channel
        assert self.session.host is not first_host

    def test_failed_open_closes_and_reraises(self):
        factory = FakeChannelFactory(fail_open=True)
        session = PSSession(channel_factory=factory)

        with pytest.raises(TransportError):
            session.open(self.descriptor)

        assert not session.is_open
        assert session.channel is None
        assert session.host is None
        assert factory.channel.close_calls == 1

    def test_close_is_idempotent(self):
        self.session.close()
        self.session.open(self.descriptor)
        self.session.close()
        self.session.close()

        assert self.factory.channel.close_calls == 1
        assert not self.session.is_open

    def test_close_never_raises(self):
        self.session.open(self.descriptor)
        self.factory.channel.close = MagicMock(side_effect=RuntimeError("broken pipe"))

        self.session.close()

        assert self.session.channel is None
        assert self.session.descriptor is None

    def test_context_manager_closes(self):
        with PSSession(channel_factory=self.factory) as session:
            session.open(self.descriptor)
            channel = session.channel
        assert channel.close_calls == 1
        assert not session.is_open

    def test_open_session_helper(self):
        with open_session(self.descriptor, channel_factory=self.factory) as session:
            assert session.is_open
        assert not session.is_open

    def test_open_async(self):
        asyncio.run(self.session.open_async(self.descriptor))
        assert self.session.is_open
        asyncio.run(self.session.close_async())
        assert not self.session.is_open


class TestConnectionTest:
    """Test cases for PSSession.test_connection."""

    def test_success(self):
        factory = FakeChannelFactory()
        assert PSSession.test_connection(ConnectionDescriptor.create_local(), channel_factory=factory)
        assert factory.channel.close_calls == 1

    def test_transport_failure_is_false(self):
        factory = FakeChannelFactory(fail_open=True)
        assert not PSSession.test_connection(ConnectionDescriptor.create_local(), channel_factory=factory)

    def test_cancellation_is_false(self):
        def factory(descriptor, host, settings):
            channel = MagicMock()
            channel.open.side_effect = OperationCancelledError("cancelled")
            return channel

        assert not PSSession.test_connection(ConnectionDescriptor.create_local(), channel_factory=factory)

    def test_none_descriptor_raises(self):
        with pytest.raises(InvalidConnectionError):
            PSSession.test_connection(None)

    def test_async_success(self):
        factory = FakeChannelFactory()
        result = asyncio.run(
            PSSession.test_connection_async(ConnectionDescriptor.create_local(), channel_factory=factory)
        )
        assert result is True

    def test_async_timeout_is_false(self):
        def factory(descriptor, host, settings):
            channel = MagicMock()
            channel.open.side_effect = lambda: time.sleep(0.5)
            return channel

        descriptor = ConnectionDescriptor(address="127.0.0.1", port=0, connect_timeout=0.05)
        result = asyncio.run(PSSession.test_connection_async(descriptor, channel_factory=factory))
        assert result is False
