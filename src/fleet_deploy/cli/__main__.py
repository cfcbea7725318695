#!/usr/bin/env python3
"""Main CLI entry point for fleet deployments."""

from .deploy import main

if __name__ == "__main__":
    main()
