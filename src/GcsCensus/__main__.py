"""Allow ``python -m GcsCensus``."""

from GcsCensus.cli import app

if __name__ == "__main__":
    app()
