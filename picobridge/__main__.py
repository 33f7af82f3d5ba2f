"""
Module entrypoint: `python -m picobridge`

Runs the engine CLI.
"""

from __future__ import annotations


def main() -> None:
    from connectors.engine_cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
