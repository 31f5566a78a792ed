"""Allow running as `python -m wt_manager`."""

from .cli import app

if __name__ == "__main__":
    app()
