"""
Connection descriptor domain model.

Describes where a session connects to (local machine or a remote WinRM
endpoint) and how: credentials, transport security and timeouts.
"""

from __future__ import annotations

import ipaddress
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

DEFAULT_REMOTE_PORT = 5986

LOCAL_ALIASES = {"localhost", "(local)"}


class AuthMethod(Enum):
    """WinRM authentication methods."""

    NEGOTIATE = "negotiate"
    KERBEROS = "kerberos"
    NTLM = "ntlm"
    BASIC = "basic"
    CREDSSP = "credssp"


class Credential(BaseModel):
    """
    Username/password pair used by remote connections.

    The password is kept as a SecretStr so it never shows up in reprs or logs.
    """

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., description="Account name (DOMAIN\\user or user@domain)")
    password: SecretStr = Field(..., description="Account password")

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Validate username is not empty."""
        if not v or not v.strip():
            raise ValueError("Username cannot be empty")
        return v.strip()

    def get_password(self) -> str:
        """Get the plain text password."""
        return self.password.get_secret_value()  # pylint: disable=no-member


class ConnectionDescriptor(BaseModel):
    """
    Immutable description of a PowerShell connection.

    A port of 0 (or less) combined with a loopback address or a local alias
    means "run PowerShell on this machine".
    """

    model_config = ConfigDict(frozen=True)

    address: str = Field(..., description="IP address, machine name or FQDN")
    port: int = Field(default=DEFAULT_REMOTE_PORT, le=65535, description="WinRM port, 0 for local")
    credential: Optional[Credential] = Field(None, description="Credential for remote connections")
    use_ssl: bool = Field(default=True, description="Use HTTPS transport")
    require_valid_certificate: bool = Field(
        default=False,
        description="Validate the server certificate (CA and CN checks)"
    )
    auth_method: AuthMethod = Field(default=AuthMethod.NEGOTIATE, description="WinRM authentication")
    connect_timeout: float = Field(default=60.0, gt=0, description="Connect timeout in seconds")
    operation_timeout: float = Field(default=300.0, gt=0, description="Operation timeout in seconds")

    @field_validator('address')
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate address is not empty."""
        if not v or not v.strip():
            raise ValueError("Address cannot be empty")
        return v.strip()

    def is_local(self) -> bool:
        """Return True if this describes a connection to the local machine."""
        if self.port > 0:
            return False

        try:
            if ipaddress.ip_address(self.address).is_loopback:
                return True
        except ValueError:
            pass

        return self.address.lower() in LOCAL_ALIASES

    @property
    def scheme(self) -> str:
        """Transport scheme used for the WinRM endpoint."""
        return "https" if self.use_ssl else "http"

    @property
    def endpoint(self) -> str:
        """WS-Management endpoint URL."""
        host = self.address
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"  # IPv6 literal
        return f"{self.scheme}://{host}:{self.port}/wsman"

    @classmethod
    def create_local(cls) -> ConnectionDescriptor:
        """Descriptor for running PowerShell on the local machine."""
        return cls(
            address="127.0.0.1",
            port=0,
            credential=None,
            use_ssl=False,
            require_valid_certificate=False,
        )

    @classmethod
    def create_remote(
        cls,
        address: str,
        username: str,
        password: str,
        port: int | None = None,
        **kwargs,
    ) -> ConnectionDescriptor:
        """Descriptor for a remote machine using a username/password pair."""
        values = dict(kwargs)
        if port is not None:
            values["port"] = port
        return cls(
            address=address,
            credential=Credential(username=username, password=password),
            **values,
        )

    def __str__(self) -> str:
        result = "localhost" if self.is_local() else self.address
        if self.port > 0:
            result += f":{self.port}"
        return result
