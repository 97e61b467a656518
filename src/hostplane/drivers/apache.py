"""Apache httpd driver."""

from __future__ import annotations

import re

from hostplane.drivers.vhosts import ConfigFileWebServer


class ApacheDriver(ConfigFileWebServer):
    """Apache 2.4 with ``mod_ssl``, ``mod_headers``, ``mod_rewrite`` and PHP-FPM.

    The configuration test is ``apache2ctl -t`` (``apachectl`` on RHEL
    via ``web_server.binary``).
    """

    name = "apache"
    template_dir = "apache"
    version_pattern = re.compile(r"Apache/([0-9.]+)")
