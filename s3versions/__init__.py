"""
S3 Object Version Lister.

Lists objects and object versions in an S3-compatible bucket, signing
each request, following pagination and reconciling version records into
per-key histories.
"""

__version__ = "1.0.0"

from s3versions.cli import main

__all__ = ["main", "__version__"]
