"""
ETL Pipeline orchestration and job management.

This module runs the pipeline stages in their strict order: load staging,
rebuild the warehouse, purge staging. A failed stage stops the run; every
downstream stage is skipped and the warehouse keeps its previous output.
"""

from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Set
from dataclasses import dataclass, field
import uuid

import structlog

from sales_etl.builder import WarehouseBuilder
from sales_etl.errors import ETLError
from sales_etl.loaders.warehouse_loader import WarehouseLoader
from sales_etl.orchestration.data_quality import DataQualityChecker, QualityCheckResult
from sales_etl.orchestration.types import JobType, JobStatus
from sales_etl.staging.staging_loader import StagingLoader
from shared.database import DatabaseManager

logger = structlog.get_logger(__name__)


@dataclass
class ETLJob:
    """ETL job definition."""
    job_id: str
    job_type: JobType
    description: str
    enabled: bool = True
    dependencies: List[str] = field(default_factory=list)

    # Runtime fields
    status: JobStatus = JobStatus.PENDING
    last_run: Optional[datetime] = None
    records_processed: int = 0
    error_message: Optional[str] = None
    result: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineRun:
    """Pipeline execution run."""
    run_id: str
    pipeline_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: JobStatus = JobStatus.RUNNING
    jobs_executed: List[str] = field(default_factory=list)
    jobs_failed: List[str] = field(default_factory=list)
    jobs_skipped: List[str] = field(default_factory=list)
    total_records_processed: int = 0
    dropped_order_lines: int = 0
    quality_result: Optional[QualityCheckResult] = None
    error_message: Optional[str] = None


class ETLPipeline:
    """
    Main ETL pipeline orchestrator.

    Manages the staging load, warehouse rebuild and staging purge jobs,
    their dependencies, and run bookkeeping.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        pipeline_name: str = "sales_star_etl",
        source_dir: Optional[str] = None,
        null_key_policy: Optional[str] = None,
        retained_tables: Optional[List[str]] = None
    ):
        """Initialize ETL pipeline."""
        self.db_manager = db_manager
        self.pipeline_name = pipeline_name
        self.null_key_policy = null_key_policy
        self.retained_tables = retained_tables
        self.jobs: Dict[str, ETLJob] = {}

        self.staging_loader = StagingLoader(db_manager, source_dir=source_dir)
        self.warehouse_loader = WarehouseLoader(db_manager)
        self.data_quality_checker = DataQualityChecker()
        self.last_quality_result: Optional[QualityCheckResult] = None

        self._setup_default_jobs()

    def _setup_default_jobs(self):
        """Setup the three pipeline stages."""
        self.add_job(ETLJob(
            job_id="load_staging",
            job_type=JobType.LOAD_STAGING,
            description="Load all staging tables from the source files"
        ))

        self.add_job(ETLJob(
            job_id="rebuild_warehouse",
            job_type=JobType.REBUILD_WAREHOUSE,
            description="Rebuild all dimension and fact tables",
            dependencies=["load_staging"]
        ))

        self.add_job(ETLJob(
            job_id="purge_staging",
            job_type=JobType.PURGE_STAGING,
            description="Purge staging tables not explicitly retained",
            dependencies=["rebuild_warehouse"]
        ))

    def add_job(self, job: ETLJob):
        """Add job to pipeline."""
        self.jobs[job.job_id] = job
        logger.info("Added ETL job", job_id=job.job_id, job_type=job.job_type.value)

    def enable_job(self, job_id: str):
        """Enable job execution."""
        if job_id in self.jobs:
            self.jobs[job_id].enabled = True
            logger.info("Enabled ETL job", job_id=job_id)

    def disable_job(self, job_id: str):
        """Disable job execution."""
        if job_id in self.jobs:
            self.jobs[job_id].enabled = False
            logger.info("Disabled ETL job", job_id=job_id)

    async def execute_job(
        self,
        job_id: str,
        force: bool = False,
        scope: Optional[Set[str]] = None
    ) -> Optional[ETLJob]:
        """
        Execute a specific ETL job.

        Args:
            job_id: Job identifier
            force: Force execution even if job is disabled
            scope: Jobs of the current run; dependencies outside it are
                assumed to have run in an earlier invocation

        Returns:
            The job with its runtime fields updated, or None if skipped
        """
        if job_id not in self.jobs:
            raise ValueError(f"Job {job_id} not found")

        job = self.jobs[job_id]

        if not job.enabled and not force:
            logger.warning("Job is disabled", job_id=job_id)
            job.status = JobStatus.SKIPPED
            return None

        logger.info("Starting ETL job execution", job_id=job_id, job_type=job.job_type.value)

        job.status = JobStatus.RUNNING
        job.last_run = datetime.now(timezone.utc)
        job.error_message = None

        try:
            if not self._check_dependencies(job, scope or set()):
                raise ETLError(f"Job dependencies not met for {job_id}")

            handlers = {
                JobType.LOAD_STAGING: self._run_load_staging,
                JobType.REBUILD_WAREHOUSE: self._run_rebuild_warehouse,
                JobType.PURGE_STAGING: self._run_purge_staging,
            }
            job.result = handlers[job.job_type]()
            job.records_processed = int(job.result.get('records_processed', 0))
            job.status = JobStatus.SUCCESS

            logger.info("ETL job completed successfully",
                        job_id=job_id,
                        records_processed=job.records_processed)

            return job

        except Exception as e:
            job.status = JobStatus.FAILED
            job.error_message = str(e)

            logger.error("ETL job failed",
                         job_id=job_id,
                         error_type=type(e).__name__,
                         error=str(e))

            raise

    def _check_dependencies(self, job: ETLJob, scope: Set[str]) -> bool:
        """Check that dependencies inside the current run succeeded."""
        for dep_job_id in job.dependencies:
            if dep_job_id not in self.jobs:
                logger.error("Dependency job not found",
                             job_id=job.job_id,
                             dependency=dep_job_id)
                return False

            if dep_job_id not in scope:
                continue

            dep_job = self.jobs[dep_job_id]
            if dep_job.status != JobStatus.SUCCESS:
                logger.warning("Dependency job not successful",
                               job_id=job.job_id,
                               dependency=dep_job_id,
                               dep_status=dep_job.status.value)
                return False

        return True

    def _run_load_staging(self) -> Dict[str, Any]:
        loaded = self.staging_loader.load_all()
        return {'records_processed': sum(loaded.values()), 'tables': loaded}

    def _run_rebuild_warehouse(self) -> Dict[str, Any]:
        build = self.build_warehouse()

        quality_result = self.data_quality_checker.check_build_quality(build)
        self.last_quality_result = quality_result
        if not quality_result.passed:
            raise ETLError(f"Data quality checks failed: {quality_result.error_message}")

        written = self.warehouse_loader.replace_all(build)
        return {
            'records_processed': sum(batch.records_processed for batch in build.batches),
            'tables': written,
            'dropped_order_lines': len(build.unmatched_lines),
            'batch_id': build.batch_id,
        }

    def _run_purge_staging(self) -> Dict[str, Any]:
        dropped = self.staging_loader.purge(self.retained_tables)
        return {'records_processed': 0, 'dropped_tables': dropped}

    def build_warehouse(self):
        """Compute a full WarehouseBuild from the current staging tables."""
        builder = WarehouseBuilder(self.db_manager, null_key_policy=self.null_key_policy)
        return builder.build()

    async def execute_pipeline(self, job_ids: Optional[List[str]] = None) -> PipelineRun:
        """
        Execute pipeline with specified jobs or all enabled jobs.

        Jobs run in dependency order. The first failure stops the run and
        every remaining job is marked skipped.

        Args:
            job_ids: Specific job IDs to execute, or None for all enabled jobs

        Returns:
            Pipeline run result
        """
        run_id = str(uuid.uuid4())
        self.last_quality_result = None
        pipeline_run = PipelineRun(
            run_id=run_id,
            pipeline_name=self.pipeline_name,
            start_time=datetime.now(timezone.utc)
        )

        logger.info("Starting pipeline execution",
                    run_id=run_id,
                    pipeline_name=self.pipeline_name)

        if job_ids is None:
            jobs_to_execute = [job for job in self.jobs.values() if job.enabled]
        else:
            unknown = [job_id for job_id in job_ids if job_id not in self.jobs]
            if unknown:
                raise ValueError(f"Unknown jobs: {', '.join(unknown)}")
            jobs_to_execute = [self.jobs[job_id] for job_id in job_ids]

        sorted_jobs = self._sort_jobs_by_dependencies(jobs_to_execute)
        scope = {job.job_id for job in sorted_jobs}

        for index, job in enumerate(sorted_jobs):
            try:
                executed = await self.execute_job(job.job_id, scope=scope)
            except Exception as e:
                pipeline_run.jobs_failed.append(job.job_id)
                pipeline_run.error_message = f"{job.job_id}: {e}"
                for remaining in sorted_jobs[index + 1:]:
                    remaining.status = JobStatus.SKIPPED
                    pipeline_run.jobs_skipped.append(remaining.job_id)
                break

            if executed is None:
                pipeline_run.jobs_skipped.append(job.job_id)
                continue

            pipeline_run.jobs_executed.append(job.job_id)
            pipeline_run.total_records_processed += executed.records_processed
            pipeline_run.dropped_order_lines += executed.result.get('dropped_order_lines', 0)

        pipeline_run.quality_result = self.last_quality_result
        pipeline_run.status = JobStatus.FAILED if pipeline_run.jobs_failed else JobStatus.SUCCESS
        pipeline_run.end_time = datetime.now(timezone.utc)

        log = logger.error if pipeline_run.jobs_failed else logger.info
        log("Pipeline execution completed",
            run_id=run_id,
            status=pipeline_run.status.value,
            jobs_executed=len(pipeline_run.jobs_executed),
            jobs_failed=len(pipeline_run.jobs_failed),
            jobs_skipped=len(pipeline_run.jobs_skipped),
            total_records=pipeline_run.total_records_processed,
            dropped_order_lines=pipeline_run.dropped_order_lines)

        return pipeline_run

    def _sort_jobs_by_dependencies(self, jobs: List[ETLJob]) -> List[ETLJob]:
        """Sort jobs by dependencies using topological sort."""
        job_dict = {job.job_id: job for job in jobs}
        sorted_jobs = []
        visited = set()

        def visit(job: ETLJob):
            if job.job_id in visited:
                return

            for dep_id in job.dependencies:
                if dep_id in job_dict:
                    visit(job_dict[dep_id])

            visited.add(job.job_id)
            sorted_jobs.append(job)

        for job in jobs:
            visit(job)

        return sorted_jobs

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """Get job status."""
        if job_id not in self.jobs:
            raise ValueError(f"Job {job_id} not found")

        job = self.jobs[job_id]
        return {
            'job_id': job.job_id,
            'job_type': job.job_type.value,
            'status': job.status.value,
            'enabled': job.enabled,
            'last_run': job.last_run.isoformat() if job.last_run else None,
            'records_processed': job.records_processed,
            'error_message': job.error_message,
            'description': job.description
        }

    def get_pipeline_status(self) -> Dict[str, Any]:
        """Get overall pipeline status, including table row counts."""
        return {
            'pipeline_name': self.pipeline_name,
            'total_jobs': len(self.jobs),
            'enabled_jobs': len([j for j in self.jobs.values() if j.enabled]),
            'failed_jobs': len([j for j in self.jobs.values() if j.status == JobStatus.FAILED]),
            'jobs': {job_id: self.get_job_status(job_id) for job_id in self.jobs},
            'staging_tables': self.staging_loader.staging_counts(),
            'warehouse_tables': self.warehouse_loader.row_counts()
        }
