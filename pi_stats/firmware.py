from __future__ import annotations

import logging
import subprocess
from typing import Protocol

from pi_stats.errors import TransportError
from pi_stats.logging_utils import TRACE_LEVEL

MAX_RESPONSE_BYTES = 4096


class FirmwareQueryService(Protocol):
    def query(self, command: str, argument: str | None = None) -> str:
        """Run one device command and return its raw text response."""
        ...


def truncate_response(text: str, limit: int = MAX_RESPONSE_BYTES) -> str:
    """Cut a response down to ``limit`` UTF-8 bytes."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", errors="ignore")


class VcgencmdQueryService:
    """Query the VideoCore firmware through the ``vcgencmd`` executable."""

    def __init__(self, path: str = "vcgencmd", timeout_s: float = 5.0) -> None:
        self.path = path
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(self.__class__.__name__)

    def query(self, command: str, argument: str | None = None) -> str:
        cmd = [self.path, command]
        if argument:
            cmd.append(argument)
        try:
            result = subprocess.run(
                cmd,
                check=False,
                text=True,
                capture_output=True,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as exc:
            raise TransportError(f"command not found: {self.path}") from exc
        except subprocess.TimeoutExpired as exc:
            raise TransportError(
                f"{' '.join(cmd)} timed out after {self.timeout_s}s"
            ) from exc
        except OSError as exc:
            raise TransportError(f"unable to run {' '.join(cmd)}: {exc}") from exc

        stdout = result.stdout or ""
        if result.returncode != 0:
            if result.stderr:
                self.logger.log(TRACE_LEVEL, "stderr: %s", result.stderr.strip())
            detail = (result.stderr or stdout).strip()
            raise TransportError(
                f"{' '.join(cmd)} failed ({result.returncode}): {detail}"
            )
        # The firmware reports unknown commands in-band.
        if stdout.startswith("error="):
            raise TransportError(f"{' '.join(cmd)} rejected: {stdout.strip()}")

        self.logger.log(TRACE_LEVEL, "%s: %s", " ".join(cmd[1:]), stdout.strip())
        response = truncate_response(stdout)
        if len(response) < len(stdout):
            self.logger.debug(
                "Truncated %s response to %s bytes", command, MAX_RESPONSE_BYTES
            )
        return response
