"""
Shared types and enums for ETL orchestration.

This module contains common types used across orchestration components
to avoid circular imports.
"""

from enum import Enum


class JobType(Enum):
    """ETL job types, one per pipeline stage."""
    LOAD_STAGING = "load_staging"
    REBUILD_WAREHOUSE = "rebuild_warehouse"
    PURGE_STAGING = "purge_staging"


class JobStatus(Enum):
    """ETL job execution status."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
