"""Allow running credvault with ``python -m credvault``."""

from credvault.cli import main


main()
