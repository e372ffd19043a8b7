"""taskbank_shared — Shared utilities for the Task Bank sync Lambda functions.

Provides:
    - HTTP response helpers with CORS
    - Notion REST API client
    - Page property readers and typed Task/Milestone records
    - Week mapping configuration (S3 / SSM / file) and week lookups
    - Computed status and deadline-type rules
    - S3/SSM client singletons
"""

__version__ = "1.0.0"
