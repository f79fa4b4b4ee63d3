"""Allow ``python -m syntropy``."""

from syntropy.cli.main import app

if __name__ == "__main__":
    app()
