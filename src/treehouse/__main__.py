"""Module entrypoint for `python -m treehouse`."""

from treehouse.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
