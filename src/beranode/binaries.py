"""
Binary Discovery Module

Locates the external tools a fleet needs before any work starts.

Lookup order for each tool:
- <fleet root>/bin/<tool> if present and executable
- $PATH (shutil.which)

Security Requirements:
- Read-only system checks
- No shell=True in subprocess calls
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

from beranode.settings import BIN_BEACOND, BIN_BERA_RETH

logger = logging.getLogger(__name__)

BIN_CAST = "cast"


class BinaryNotFoundError(Exception):
    """Raised when required binaries are missing."""

    pass


@dataclass
class BinaryCheckResult:
    """Result of binary checks."""

    all_available: bool
    missing: list[str]
    paths: dict[str, Path] = field(default_factory=dict)


class BinaryLocator:
    """
    Find the binaries a fleet runs and the tools that provision it.

    Required tools:
    - beacond (consensus layer)
    - bera-reth (execution layer)
    - cast (wallet and key generation, from Foundry)
    """

    REQUIRED_TOOLS: ClassVar[list[str]] = [BIN_BEACOND, BIN_BERA_RETH, BIN_CAST]
    INSTALL_HINTS: ClassVar[dict[str, str]] = {
        BIN_BEACOND: "https://github.com/berachain/beacon-kit/releases",
        BIN_BERA_RETH: "https://github.com/berachain/bera-reth/releases",
        BIN_CAST: "curl -L https://foundry.paradigm.xyz | bash && foundryup",
    }

    def __init__(self, bin_dir: Path | None = None):
        self.bin_dir = bin_dir

    def find(self, tool_name: str) -> Path | None:
        """Return the path of a tool, or None if it cannot be found."""
        if self.bin_dir is not None:
            candidate = self.bin_dir / tool_name
            if candidate.is_file() and os.access(candidate, os.X_OK):
                logger.debug(f"Found {tool_name} at {candidate}")
                return candidate
        found = shutil.which(tool_name)
        if found:
            logger.debug(f"Found {tool_name} at {found}")
            return Path(found)
        logger.debug(f"Tool not found: {tool_name}")
        return None

    def require(self, tool_name: str) -> Path:
        """Return the path of a tool.

        Raises:
            BinaryNotFoundError: If the tool cannot be found
        """
        path = self.find(tool_name)
        if path is None:
            raise BinaryNotFoundError(self.format_missing_message([tool_name]))
        return path

    def check_all(self, tools: list[str] | None = None) -> BinaryCheckResult:
        missing: list[str] = []
        paths: dict[str, Path] = {}
        for tool in tools or self.REQUIRED_TOOLS:
            path = self.find(tool)
            if path is None:
                missing.append(tool)
            else:
                paths[tool] = path

        result = BinaryCheckResult(all_available=not missing, missing=missing, paths=paths)
        if not result.all_available:
            logger.error(f"Missing binaries: {', '.join(missing)}")
        return result

    def require_all(self, tools: list[str] | None = None) -> dict[str, Path]:
        """Return the paths of several tools, reporting every missing one at once.

        Raises:
            BinaryNotFoundError: If any tool cannot be found
        """
        result = self.check_all(tools)
        if not result.all_available:
            raise BinaryNotFoundError(self.format_missing_message(result.missing))
        return result.paths

    @classmethod
    def format_missing_message(cls, missing: list[str]) -> str:
        if not missing:
            return "All required binaries are installed."
        lines = ["Missing required binaries:", ""]
        for tool in missing:
            hint = cls.INSTALL_HINTS.get(tool)
            lines.append(f"  - {tool}" + (f" ({hint})" if hint else ""))
        lines.append("")
        lines.append("Place them in <beranodes-dir>/bin or on your PATH.")
        return "\n".join(lines)
