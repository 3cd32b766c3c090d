"""
Runtime configuration for VuXprog.

Defaults live here; environment variables override them and CLI options
override both.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_BAUDRATE = 9600
DEFAULT_TIMEOUT = 5.0
DEFAULT_FORMAT = "ihex"
DEFAULT_WRITE_PROTOCOL = "single"

ENV_PORT = "VUXPROG_PORT"
ENV_BAUD = "VUXPROG_BAUD"
ENV_TIMEOUT = "VUXPROG_TIMEOUT"
ENV_WRITE_PROTOCOL = "VUXPROG_WRITE_PROTOCOL"


@dataclass
class ProgrammerConfig:
    """
    Settings for one programmer invocation.

    Attributes:
        port: Serial port device
        baudrate: Serial baud rate
        timeout: Per-read deadline in seconds
        file_format: "ihex" or "binary"
        write_protocol: Flash write handshake, "single" or "double" ack
        init_sequence: Bytes sent before identify to start the bootloader
        reset_after: Reset the device after a successful operation
        include_bootloader: Dump the bootloader pages on flash read
        force: Allow writing over the bootloader pages
    """
    port: str = DEFAULT_PORT
    baudrate: int = DEFAULT_BAUDRATE
    timeout: float = DEFAULT_TIMEOUT
    file_format: str = DEFAULT_FORMAT
    write_protocol: str = DEFAULT_WRITE_PROTOCOL
    init_sequence: Optional[bytes] = None
    reset_after: bool = False
    include_bootloader: bool = False
    force: bool = False

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ProgrammerConfig":
        """Build a config from defaults plus VUXPROG_* environment variables."""
        env = os.environ if environ is None else environ
        config = cls()

        if env.get(ENV_PORT):
            config.port = env[ENV_PORT]
        if env.get(ENV_BAUD):
            try:
                config.baudrate = int(env[ENV_BAUD])
            except ValueError:
                raise ValueError(f"Invalid {ENV_BAUD}: {env[ENV_BAUD]!r}")
        if env.get(ENV_TIMEOUT):
            try:
                config.timeout = float(env[ENV_TIMEOUT])
            except ValueError:
                raise ValueError(f"Invalid {ENV_TIMEOUT}: {env[ENV_TIMEOUT]!r}")
        if env.get(ENV_WRITE_PROTOCOL):
            config.write_protocol = env[ENV_WRITE_PROTOCOL].strip().lower()

        return config

    def with_overrides(self, **overrides) -> "ProgrammerConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
