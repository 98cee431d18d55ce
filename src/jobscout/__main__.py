"""jobscout CLI entry point."""

from jobscout.cli import app

if __name__ == "__main__":
    app()
