"""Allow ``python -m hostplane``."""

from hostplane.cli.main import main

main()
