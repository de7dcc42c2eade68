"""Channel selection."""

from psclient.domain.connection import ConnectionDescriptor
from psclient.domain.host import Host
from psclient.infrastructure.channels.base import ExecutionChannel
from psclient.infrastructure.channels.local import LocalChannel
from psclient.infrastructure.channels.winrm_channel import WinRMChannel
from psclient.infrastructure.settings import ClientSettings


def create_channel(
    descriptor: ConnectionDescriptor, host: Host, settings: ClientSettings
) -> ExecutionChannel:
    """Local descriptors get a LocalChannel, everything else goes through WinRM."""
    if descriptor.is_local():
        return LocalChannel(descriptor, host, settings)
    return WinRMChannel(descriptor, host, settings)
