#!/usr/bin/env python3
"""
Constants for s3_publishing application.

Centralized constants to eliminate duplication across the codebase.
"""

from typing import Literal

# Default settings file consumed by the CLI
DEFAULT_SETTINGS_FILE = "publishing.json"

# Profile defaults
DEFAULT_ACL = "public-read"
DEFAULT_UNPUBLISH_RESOURCES = True
DEFAULT_CORS_ALLOW_ORIGIN = "*"

# Publishing concurrency defaults
DEFAULT_PUBLISH_CONCURRENCY = 20
DEFAULT_TRANSFER_TIMEOUT = 300.0  # seconds per copy/upload

# S3 connection pool configuration
# Set to 1.5x the publish concurrency to handle burst traffic
DEFAULT_S3_MAX_POOL_CONNECTIONS = 30

# Listing retries before a run is aborted
LISTING_MAX_ATTEMPTS = 3

# Attempts per multipart part before the upload is aborted
PART_UPLOAD_MAX_ATTEMPTS = 3

# S3 multipart limits
MULTIPART_MIN_PART_SIZE = 5 * 1024 * 1024
DELETE_BATCH_SIZE = 1000  # S3 DeleteObjects API limit

# Chunk size used when streaming bytes out of a store
STREAM_CHUNK_SIZE = 1024 * 1024

DEFAULT_MEDIA_TYPE = "application/octet-stream"

CONNECTION_TEST_KEY = "s3-publishing.connection-test.txt"

# Storage kinds
STORAGE_TYPES = Literal["s3", "local"]
