"""
psclient - PowerShell pipeline client.

Runs PowerShell pipelines locally or over WinRM, returns typed results and
moves files to and from the target machine.

Usage:
    # CLI
    psclient run "Get-Date"

    # Programmatic
    from psclient import ConnectionDescriptor, PSClient

    with PSClient(ConnectionDescriptor.create_local()) as client:
        client.file_system.put_file(r"C:\\Temp\\hello.txt", b"HELLO WORLD!")
"""

__version__ = "0.1.0"
__author__ = "psclient Team"

from psclient.application.client import PSClient
from psclient.application.coercion import NoResult
from psclient.application.session import PSSession, open_session
from psclient.domain.command import Command
from psclient.domain.connection import ConnectionDescriptor

__all__ = [
    "Command",
    "ConnectionDescriptor",
    "NoResult",
    "PSClient",
    "PSSession",
    "open_session",
    "__version__",
]
