"""Entry point for CLI invocation via python -m."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
