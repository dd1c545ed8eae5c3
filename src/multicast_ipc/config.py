"""Socket configuration with named defaults."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError
from .network import DEFAULT_MULTICAST_ADDRESS, DEFAULT_PORT, is_multicast_address

PORT_ENV = "MULTICAST_IPC_PORT"
ADDRESS_ENV = "MULTICAST_IPC_ADDRESS"


@dataclass(frozen=True)
class SocketConfig:
    """Port and multicast group a socket listens on."""
    port: int = DEFAULT_PORT
    multicast_address: str = DEFAULT_MULTICAST_ADDRESS

    def validate(self) -> "SocketConfig":
        """
        Check the port range and the multicast address.

        Returns:
            The same config (for chaining)

        Raises:
            ConfigError: If a value is out of range
        """
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ConfigError(f"Port must be an integer, got {self.port!r}")
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"Port out of range: {self.port}")
        if not is_multicast_address(self.multicast_address):
            raise ConfigError(
                f"Not an IPv4 multicast address: {self.multicast_address!r}"
            )
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SocketConfig":
        """
        Build a config from MULTICAST_IPC_PORT and MULTICAST_IPC_ADDRESS.

        Args:
            environ: Environment mapping (defaults to os.environ)

        Raises:
            ConfigError: If MULTICAST_IPC_PORT is not a number
        """
        env = os.environ if environ is None else environ

        port = DEFAULT_PORT
        raw_port = env.get(PORT_ENV)
        if raw_port:
            try:
                port = int(raw_port)
            except ValueError:
                raise ConfigError(f"{PORT_ENV} must be an integer, got {raw_port!r}") from None

        address = env.get(ADDRESS_ENV) or DEFAULT_MULTICAST_ADDRESS
        return cls(port=port, multicast_address=address)
