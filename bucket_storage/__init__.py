"""
Bucket Storage - object storage adapter for S3-compatible buckets.

This package contains:
- core: Storage facade, key building, listing and streaming (framework-agnostic)
- infrastructure: boto3 and in-memory backends
- api: FastAPI routes serving stored files
- config: Application configuration
"""

__version__ = "0.1.0"
