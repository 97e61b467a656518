"""External command execution with mandatory timeouts."""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from hostplane.core.errors import ExternalProcessError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

log = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished command."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stripped."""
        return "\n".join(p for p in (self.stdout.strip(), self.stderr.strip()) if p)


class CommandRunner:
    """Run programs to completion.

    Parameters
    ----------
    default_timeout:
        Seconds allowed when a call does not pass its own ``timeout``.

    """

    def __init__(self, default_timeout: float = _DEFAULT_TIMEOUT) -> None:
        self._default_timeout = default_timeout

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        check: bool = False,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run *argv* and wait for it.

        Parameters
        ----------
        argv:
            Program and arguments; never passed through a shell.
        timeout:
            Seconds before the process is killed.
        check:
            Raise :class:`ExternalProcessError` on a non-zero exit.
        env:
            Replacement environment, if any.
        input_text:
            Text piped to the process's stdin.

        Returns
        -------
        CommandResult

        Raises
        ------
        ExternalProcessError
            If the program is missing, times out, or (with *check*) exits
            non-zero.

        """
        command = tuple(argv)
        limit = self._default_timeout if timeout is None else timeout
        started = time.monotonic()
        try:
            completed = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                timeout=limit,
                check=False,
                env=dict(env) if env is not None else None,
                input=input_text,
            )
        except subprocess.TimeoutExpired as exc:
            msg = f"'{command[0]}' timed out after {limit:g}s"
            raise ExternalProcessError(
                msg,
                command=command,
                output=_decode(exc.stdout) + _decode(exc.stderr),
                retryable=True,
            ) from exc
        except OSError as exc:
            msg = f"Could not execute '{command[0]}': {exc}"
            raise ExternalProcessError(msg, command=command) from exc

        result = CommandResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=time.monotonic() - started,
        )
        log.debug(
            "Ran %s (exit=%d, %.2fs)",
            " ".join(command),
            result.returncode,
            result.duration,
        )
        if check and not result.ok:
            msg = f"'{' '.join(command)}' exited with status {result.returncode}"
            if result.output:
                msg = f"{msg}: {result.output}"
            raise ExternalProcessError(
                msg,
                command=command,
                returncode=result.returncode,
                output=result.output,
            )
        return result


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
