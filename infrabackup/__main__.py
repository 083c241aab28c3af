"""Entry point for ``python -m infrabackup``."""

from infrabackup.cli import app

if __name__ == "__main__":
    app()
