"""Allow `python -m automate`."""

from automate.cli.app import app

app()
