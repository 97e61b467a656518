"""Nginx driver."""

from __future__ import annotations

import re

from hostplane.drivers.vhosts import ConfigFileWebServer


class NginxDriver(ConfigFileWebServer):
    """Nginx with PHP-FPM over FastCGI.

    While TLS is enabled the port-80 server only answers ACME HTTP-01
    challenges and redirects everything else.
    """

    name = "nginx"
    template_dir = "nginx"
    version_pattern = re.compile(r"nginx/([0-9.]+)")

    def _test_command(self) -> list[str]:
        return [self._settings.binary, "-t", "-q"]
