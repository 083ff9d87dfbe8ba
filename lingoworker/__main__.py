"""Allow ``python -m lingoworker``."""

from lingoworker.cli.commands import app

if __name__ == "__main__":
    app()
