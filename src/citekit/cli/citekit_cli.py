#!/usr/bin/env python3
"""CLI entry point for the citekit command.

Fetches bibliographic metadata and renders bibliographies.
"""

import sys


def main() -> None:
    """Entry point for citekit command."""
    from citekit.main import main as citekit_main

    sys.exit(citekit_main())


if __name__ == "__main__":
    main()
