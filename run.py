#!/usr/bin/env python3
"""
S3 Object Version Lister

Run this script to list objects and object versions in an S3-compatible
bucket configured through .env, the environment or config.json.

Usage:
    python run.py versions                  # All version histories
    python run.py versions logs/ data/      # Several prefixes concurrently
    python run.py list-versions report.pdf  # Versions of one key
    python run.py ls photos/                # Objects under a prefix
    python run.py list-files                # Every object
    python run.py find-version a.bin a.bin  # Version matching a local file
    python run.py -j out.json versions      # Also write JSON results
"""

import sys
from s3versions.cli import main

if __name__ == "__main__":
    sys.exit(main())
