"""CLI entry point for running hoptrace as a module."""

from .main import run


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
