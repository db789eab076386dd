"""
Infrastructure layer - external service integrations.

- storage: boto3-backed S3 client and in-memory mock

These wrappers translate between SDK responses and our domain models.
"""
