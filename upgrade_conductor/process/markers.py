"""Sentinel files used to detect completion of terminal-hosted commands."""

import secrets
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

DEFAULT_MARKER_PREFIX = ".upgrade-marker"


@dataclass(frozen=True)
class MarkerPair:
    """Success and failure marker files for one command invocation.

    The name embeds a millisecond timestamp and a random token, so markers of
    successive or overlapping invocations in the same directory never collide.

    Attributes:
        directory: Working directory the markers are written to
        name: Shared base name of both markers
    """

    directory: Path
    name: str

    @classmethod
    def create(cls, directory: Path | str, prefix: str = DEFAULT_MARKER_PREFIX) -> "MarkerPair":
        """Generate a fresh, unique marker pair for ``directory``."""
        name = f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        return cls(directory=Path(directory), name=name)

    @property
    def success_name(self) -> str:
        return f"{self.name}-success"

    @property
    def failure_name(self) -> str:
        return f"{self.name}-fail"

    @property
    def success_path(self) -> Path:
        return self.directory / self.success_name

    @property
    def failure_path(self) -> Path:
        return self.directory / self.failure_name

    def paths(self) -> tuple[Path, Path]:
        return self.success_path, self.failure_path

    def wrap(self, command: str) -> str:
        """Build the composite command that touches a marker when ``command`` ends.

        The markers are referenced relative to the working directory the
        terminal is started in.
        """
        return (
            f"{command}; if [ $? -eq 0 ]; then touch {self.success_name}; "
            f"else touch {self.failure_name}; fi"
        )

    def remove(self) -> None:
        """Delete both markers. Missing files are ignored."""
        for path in self.paths():
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log.warning("marker_cleanup_failed", path=str(path), error=str(e))
