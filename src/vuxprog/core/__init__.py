"""
Core module for VuXprog.

This module provides the single source of truth for:
- Diff-and-apply programming (engine.py)
- Image file loading/saving (storage.py)
- Option parsing (parsing.py)
- Result objects (results.py)
- Port-to-file workflows (actions.py)

The CLI should call into this module rather than implementing its own logic.
"""

from .engine import read_flash, program_flash, read_eeprom, program_eeprom
from .storage import FileFormat, load_image, save_image, parse_file_format
from .parsing import parse_init_sequence
from .results import OperationResult
from .actions import (
    identify_device,
    flash_read,
    flash_write,
    eeprom_read,
    eeprom_write,
    reset_device,
)

__all__ = [
    # Engine
    "read_flash",
    "program_flash",
    "read_eeprom",
    "program_eeprom",
    # Storage
    "FileFormat",
    "load_image",
    "save_image",
    "parse_file_format",
    # Parsing
    "parse_init_sequence",
    # Results
    "OperationResult",
    # Actions
    "identify_device",
    "flash_read",
    "flash_write",
    "eeprom_read",
    "eeprom_write",
    "reset_device",
]
