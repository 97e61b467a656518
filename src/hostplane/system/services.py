"""systemd service control."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hostplane.core.errors import ExternalProcessError

if TYPE_CHECKING:
    from hostplane.system.runner import CommandRunner

log = logging.getLogger(__name__)


class ServiceManager:
    """Thin wrapper over ``systemctl``.

    Parameters
    ----------
    runner:
        Command runner used for every call.
    systemctl:
        Path or name of the ``systemctl`` binary.
    timeout:
        Seconds allowed for each ``systemctl`` invocation.

    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        systemctl: str = "systemctl",
        timeout: float = 90.0,
    ) -> None:
        self._runner = runner
        self._systemctl = systemctl
        self._timeout = timeout

    def _control(self, action: str, service: str) -> None:
        self._runner.run(
            [self._systemctl, action, service],
            timeout=self._timeout,
            check=True,
        )
        log.info("systemctl %s %s", action, service)

    def reload(self, service: str) -> None:
        self._control("reload", service)

    def restart(self, service: str) -> None:
        self._control("restart", service)

    def start(self, service: str) -> None:
        self._control("start", service)

    def stop(self, service: str) -> None:
        self._control("stop", service)

    def is_active(self, service: str) -> bool:
        try:
            result = self._runner.run(
                [self._systemctl, "is-active", "--quiet", service],
                timeout=self._timeout,
            )
        except ExternalProcessError:
            log.warning("Could not query state of %s", service, exc_info=True)
            return False
        return result.ok

    def reload_or_restart(self, service: str) -> str:
        """Reload *service*, falling back to a restart if the reload fails.

        Returns
        -------
        str
            ``"reload"`` or ``"restart"``, whichever succeeded.

        Raises
        ------
        ExternalProcessError
            If the restart fails as well.

        """
        try:
            self.reload(service)
        except ExternalProcessError as exc:
            log.warning("Reload of %s failed (%s); restarting", service, exc.detail)
            self.restart(service)
            return "restart"
        return "reload"
