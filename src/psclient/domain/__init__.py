"""
Domain layer - value objects, records and errors.

Nothing in here talks to PowerShell; channels and services build on these types.
"""

from psclient.domain.command import Command
from psclient.domain.connection import AuthMethod, ConnectionDescriptor, Credential
from psclient.domain.host import Host, HostCallbacks, HostUI, OutputStream
from psclient.domain.records import ErrorRecord, ProgressRecord, ProgressRecordType, RemoteObject

__all__ = [
    "AuthMethod",
    "Command",
    "ConnectionDescriptor",
    "Credential",
    "ErrorRecord",
    "Host",
    "HostCallbacks",
    "HostUI",
    "OutputStream",
    "ProgressRecord",
    "ProgressRecordType",
    "RemoteObject",
]
