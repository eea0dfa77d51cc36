"""Allow `python -m local_providers`."""

from local_providers.cli import main

main()
