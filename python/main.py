#!/usr/bin/env python3
"""Run a ghcr-cleanup from a source checkout: python python/main.py --help"""

from ghcr_cleanup.cli import main

if __name__ == "__main__":
    main()
