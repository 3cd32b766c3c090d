"""
Result objects for programmer actions.

Provides a unified result structure that the CLI (or any other front end)
can use to display operation outcomes consistently.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from vuxprog.errors import VuxprogError


@dataclass
class OperationResult:
    """
    Unified result object for all programmer actions.

    Attributes:
        ok: Whether the operation completed successfully
        operation: Name of the operation (e.g., "flash_write", "eeprom_read")
        port: Serial port used
        region: Target region description (e.g., "pages 0-111")
        bytes_len: Number of bytes processed
        changed: Pages (flash) or bytes (EEPROM) actually written
        error_kind: Category of the failure, if any ("protocol", "i/o", ...)
        hashes: Dict of hash values (sha256 of the image)
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
        metadata: Additional operation-specific data
        logs: Captured log lines from the operation
    """
    ok: bool
    operation: str
    port: str = ""
    region: str = ""
    bytes_len: int = 0
    changed: Optional[int] = None
    error_kind: str = ""
    hashes: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def to_summary(self) -> str:
        """
        Generate a human-readable summary string.

        Suitable for CLI output or simple logging.
        """
        status = "SUCCESS" if self.ok else "FAILED"
        lines = [f"[{status}] {self.operation}"]

        if self.port:
            lines.append(f"  Port: {self.port}")
        if self.region:
            lines.append(f"  Region: {self.region}")
        if self.bytes_len:
            lines.append(f"  Bytes: {self.bytes_len:,}")
        if self.changed is not None:
            lines.append(f"  Changed: {self.changed}")

        for name, value in self.hashes.items():
            lines.append(f"  {name}: {value[:16]}...")

        if self.warnings:
            lines.append("  Warnings:")
            for warn in self.warnings:
                lines.append(f"    - {warn}")

        if self.errors:
            lines.append("  Errors:")
            for err in self.errors:
                lines.append(f"    - {err}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "port": self.port,
            "region": self.region,
            "bytes_len": self.bytes_len,
            "changed": self.changed,
            "error_kind": self.error_kind,
            "hashes": self.hashes,
            "warnings": self.warnings,
            "errors": self.errors,
            "metadata": {
                k: v for k, v in self.metadata.items() if not isinstance(v, (bytes, bytearray))
            },
            "logs": self.logs,
        }

    @classmethod
    def success(
        cls,
        operation: str,
        region: str = "",
        bytes_len: int = 0,
        **kwargs,
    ) -> "OperationResult":
        """Create a successful result."""
        return cls(
            ok=True,
            operation=operation,
            region=region,
            bytes_len=bytes_len,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(
            ok=False,
            operation=operation,
            **kwargs,
        )
        result.errors.append(error)
        return result

    @classmethod
    def from_error(cls, operation: str, exc: VuxprogError, **kwargs) -> "OperationResult":
        """Create a failed result from a programmer error."""
        result = cls.failure(operation, exc.diagnostic(), error_kind=exc.kind.value, **kwargs)
        result.metadata.update(
            {k: v for k, v in exc.details.items() if v is not None}
        )
        return result
