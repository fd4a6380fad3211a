"""
Data Quality Checker for warehouse rebuilds.

This module reports on a computed WarehouseBuild before it is written:
order lines dropped by the fact join, null and duplicate natural keys,
time dimension uniqueness and coverage, and revenue reconciliation.
Only structural violations fail a build; dropped lines and key anomalies
are reported as warnings.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from enum import Enum

import structlog

from sales_etl.models import WarehouseBuild, ETLBatch

logger = structlog.get_logger(__name__)


class QualityCheckType(Enum):
    """Types of data quality checks."""
    COMPLETENESS = "completeness"
    CONSISTENCY = "consistency"
    UNIQUENESS = "uniqueness"
    ACCURACY = "accuracy"


class QualitySeverity(Enum):
    """Severity levels for quality issues."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class QualityIssue:
    """Data quality issue."""
    check_type: QualityCheckType
    severity: QualitySeverity
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    affected_records: int = 0


@dataclass
class QualityCheckResult:
    """Result of data quality checks."""
    batch_id: str
    check_timestamp: datetime
    passed: bool
    total_checks: int
    passed_checks: int
    failed_checks: int
    issues: List[QualityIssue] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


class DataQualityChecker:
    """
    Quality report for a warehouse build.

    Checks never modify the build; a build fails only on ERROR or CRITICAL
    issues, which the pipeline treats as fatal before writing anything.
    """

    def check_build_quality(self, build: WarehouseBuild) -> QualityCheckResult:
        """
        Run every check against a build.

        Args:
            build: Computed dimensions and facts

        Returns:
            Quality check result
        """
        logger.info("Starting data quality checks", batch_id=build.batch_id)

        quality_result = QualityCheckResult(
            batch_id=build.batch_id,
            check_timestamp=datetime.now(timezone.utc),
            passed=True,
            total_checks=0,
            passed_checks=0,
            failed_checks=0
        )

        checks = [
            self._check_join_completeness,
            self._check_fact_cardinality,
            self._check_natural_keys,
            self._check_time_dimension_uniqueness,
            self._check_time_dimension_coverage,
            self._check_revenue_reconciliation,
        ]

        for check_func in checks:
            issues = check_func(build)
            quality_result.issues.extend(issues)
            quality_result.total_checks += 1

            if any(issue.severity in (QualitySeverity.CRITICAL, QualitySeverity.ERROR) for issue in issues):
                quality_result.failed_checks += 1
                quality_result.passed = False
            else:
                quality_result.passed_checks += 1

        quality_result.metrics = self._calculate_quality_metrics(build)

        if not quality_result.passed:
            failing = [
                issue.message for issue in quality_result.issues
                if issue.severity in (QualitySeverity.CRITICAL, QualitySeverity.ERROR)
            ]
            quality_result.error_message = "; ".join(failing)

        logger.info("Data quality checks completed",
                    batch_id=build.batch_id,
                    passed=quality_result.passed,
                    total_checks=quality_result.total_checks,
                    issues=len(quality_result.issues))

        return quality_result

    def _fact_batch(self, build: WarehouseBuild) -> Optional[ETLBatch]:
        for batch in build.batches:
            if batch.table_name == "sales_fact":
                return batch
        return None

    def _check_join_completeness(self, build: WarehouseBuild) -> List[QualityIssue]:
        """Order lines whose order or product is absent from staging."""
        unmatched = build.unmatched_lines
        if not unmatched:
            return []

        by_reason = Counter(outcome.reason.value for outcome in unmatched)
        return [QualityIssue(
            check_type=QualityCheckType.COMPLETENESS,
            severity=QualitySeverity.WARNING,
            message=f"{len(unmatched)} order lines dropped by the fact join",
            details={
                'by_reason': dict(by_reason),
                'order_line_ids': [outcome.order_line_id for outcome in unmatched[:50]]
            },
            affected_records=len(unmatched)
        )]

    def _check_fact_cardinality(self, build: WarehouseBuild) -> List[QualityIssue]:
        """At most one fact per order line unless staging keys repeat."""
        fact_batch = self._fact_batch(build)
        if fact_batch is None:
            return []

        order_lines = fact_batch.records_processed
        if len(build.sales_fact) <= order_lines:
            return []

        return [QualityIssue(
            check_type=QualityCheckType.CONSISTENCY,
            severity=QualitySeverity.WARNING,
            message=(
                f"{len(build.sales_fact)} facts from {order_lines} order lines; "
                "duplicate order or product ids in staging multiplied rows"
            ),
            details={'facts': len(build.sales_fact), 'order_lines': order_lines},
            affected_records=len(build.sales_fact) - order_lines
        )]

    def _check_natural_keys(self, build: WarehouseBuild) -> List[QualityIssue]:
        """Null and duplicate natural keys reported by the dimension projectors."""
        issues = []
        for batch in build.batches:
            null_keys = batch.details.get('null_keys', 0)
            duplicate_keys = batch.details.get('duplicate_keys', 0)
            if null_keys:
                issues.append(QualityIssue(
                    check_type=QualityCheckType.COMPLETENESS,
                    severity=QualitySeverity.WARNING,
                    message=f"{null_keys} rows without natural key in {batch.table_name}",
                    details={'table': batch.table_name,
                             'rejected': batch.records_dropped},
                    affected_records=null_keys
                ))
            if duplicate_keys:
                issues.append(QualityIssue(
                    check_type=QualityCheckType.UNIQUENESS,
                    severity=QualitySeverity.WARNING,
                    message=f"{duplicate_keys} duplicate natural keys in {batch.table_name}",
                    details={'table': batch.table_name},
                    affected_records=duplicate_keys
                ))
        return issues

    def _check_time_dimension_uniqueness(self, build: WarehouseBuild) -> List[QualityIssue]:
        """dim_time must hold one row per order date."""
        counts = Counter(record.order_date for record in build.dim_time)
        duplicates = {order_date: count for order_date, count in counts.items() if count > 1}
        if not duplicates:
            return []

        return [QualityIssue(
            check_type=QualityCheckType.UNIQUENESS,
            severity=QualitySeverity.CRITICAL,
            message=f"{len(duplicates)} duplicate order dates in dim_time",
            details={'duplicates': duplicates},
            affected_records=sum(duplicates.values())
        )]

    def _check_time_dimension_coverage(self, build: WarehouseBuild) -> List[QualityIssue]:
        """Every fact order date must exist in dim_time."""
        known_dates = {record.order_date for record in build.dim_time}
        missing = sorted({fact.order_date for fact in build.sales_fact} - known_dates)
        if not missing:
            return []

        return [QualityIssue(
            check_type=QualityCheckType.CONSISTENCY,
            severity=QualitySeverity.ERROR,
            message=f"{len(missing)} fact order dates missing from dim_time",
            details={'missing_dates': missing[:50]},
            affected_records=len(missing)
        )]

    def _check_revenue_reconciliation(self, build: WarehouseBuild) -> List[QualityIssue]:
        """Sum of total_revenue equals sum of quantity * dimension price."""
        product_ids = [product.product_id for product in build.dim_product]
        if len(product_ids) != len(set(product_ids)):
            return [QualityIssue(
                check_type=QualityCheckType.ACCURACY,
                severity=QualitySeverity.INFO,
                message="Revenue reconciliation skipped: product ids are not unique"
            )]

        prices = {product.product_id: product.price for product in build.dim_product}
        actual = 0
        expected = 0
        for fact in build.sales_fact:
            price = prices.get(fact.product_id)
            if fact.total_revenue is None or fact.quantity is None or price is None:
                continue
            actual += fact.total_revenue
            expected += fact.quantity * price

        if actual == expected:
            return []

        return [QualityIssue(
            check_type=QualityCheckType.ACCURACY,
            severity=QualitySeverity.ERROR,
            message=f"Revenue does not reconcile: facts sum to {actual}, expected {expected}",
            details={'actual': str(actual), 'expected': str(expected)}
        )]

    def _calculate_quality_metrics(self, build: WarehouseBuild) -> Dict[str, Any]:
        """Row counts and drop rate for the build."""
        fact_batch = self._fact_batch(build)
        order_lines = fact_batch.records_processed if fact_batch else len(build.line_outcomes)
        dropped = len(build.unmatched_lines)
        return {
            'order_lines': order_lines,
            'facts': len(build.sales_fact),
            'dropped_order_lines': dropped,
            'drop_rate': (dropped / order_lines) if order_lines else 0.0,
            'dim_time_rows': len(build.dim_time),
            'dimension_rows': {
                'dim_customer': len(build.dim_customer),
                'dim_product': len(build.dim_product),
                'dim_supplier': len(build.dim_supplier),
                'dim_category': len(build.dim_category),
            }
        }

    def generate_quality_report(self, quality_result: QualityCheckResult) -> Dict[str, Any]:
        """Summarize a quality result for logs and the CLI."""
        return {
            'batch_id': quality_result.batch_id,
            'check_timestamp': quality_result.check_timestamp.isoformat(),
            'overall_status': 'PASSED' if quality_result.passed else 'FAILED',
            'summary': {
                'total_checks': quality_result.total_checks,
                'passed_checks': quality_result.passed_checks,
                'failed_checks': quality_result.failed_checks,
                'total_issues': len(quality_result.issues)
            },
            'metrics': quality_result.metrics,
            'issues': [
                {
                    'type': issue.check_type.value,
                    'severity': issue.severity.value,
                    'message': issue.message,
                    'affected_records': issue.affected_records,
                    'details': issue.details
                }
                for issue in quality_result.issues
            ]
        }
