"""
BigQuery sink for measurements.

Each measurement becomes one row with a repeated ``Samples`` record. The
table is partitioned by day on ``MeasuredAtTime``. On startup the table is
created when missing, otherwise its schema is updated in place so that new
nullable columns roll out without manual steps.

All operations are no-ops when the integration is disabled (``BQ_ENABLE``),
which allows running the exporter against a network of plugs without
Google Cloud credentials.

The google-cloud-bigquery client is synchronous; async callers run these
methods in a worker thread.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import time

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import bigquery

from exporter.src.errors import WarehouseError
from exporter.src.models import Measurement

logger = logging.getLogger(__name__)

PARTITION_FIELD: str = "MeasuredAtTime"
"""Column used for daily time partitioning."""

SAMPLE_SCHEMA: list[bigquery.SchemaField] = [
    bigquery.SchemaField("EntityType", "STRING"),
    bigquery.SchemaField("EntityName", "STRING"),
    bigquery.SchemaField("SampleType", "STRING"),
    bigquery.SchemaField("SampleName", "STRING"),
    bigquery.SchemaField("MetricType", "STRING"),
    bigquery.SchemaField("Value", "FLOAT"),
]

MEASUREMENT_SCHEMA: list[bigquery.SchemaField] = [
    bigquery.SchemaField("ID", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("Source", "STRING"),
    bigquery.SchemaField("Location", "STRING"),
    bigquery.SchemaField("Samples", "RECORD", mode="REPEATED", fields=SAMPLE_SCHEMA),
    bigquery.SchemaField(PARTITION_FIELD, "TIMESTAMP", mode="REQUIRED"),
]
"""Row schema; column names match the Measurement JSON aliases."""


class BigQueryClient:
    """Creates the measurement table and inserts measurements into it.

    Args:
        project_id: Google Cloud project holding the dataset.
        dataset: Dataset name.
        table: Table name.
        enable: When False every operation returns immediately.
        client: Pre-built ``bigquery.Client``; created from application
            default credentials when omitted and *enable* is True.

    Raises:
        WarehouseError: If the BigQuery client cannot be created.
    """

    def __init__(
        self,
        project_id: str,
        dataset: str,
        table: str,
        *,
        enable: bool = True,
        client: bigquery.Client | None = None,
    ) -> None:
        self._project_id = project_id
        self._dataset = dataset
        self._table = table
        self._enable = enable

        if client is None and enable:
            try:
                client = bigquery.Client(project=project_id)
            except GoogleAuthError as exc:
                raise WarehouseError(f"failed creating BigQuery client: {exc}") from exc
        self._client = client

    @property
    def table_id(self) -> str:
        """Fully qualified ``project.dataset.table`` id."""
        return f"{self._project_id}.{self._dataset}.{self._table}"

    # ------------------------------------------------------------------
    # Table management
    # ------------------------------------------------------------------

    def check_if_table_exists(self) -> bool:
        """Return True if the table exists (always False when disabled)."""
        if not self._enable:
            return False
        try:
            self._client.get_table(self.table_id)
        except NotFound:
            return False
        return True

    def create_table(self, *, wait_ready: bool = True, poll_interval_s: float = 1.0) -> None:
        """Create the table with the measurement schema and day partitioning.

        Args:
            wait_ready: Block until the table is visible to ``get_table``.
            poll_interval_s: Sleep between readiness checks.
        """
        if not self._enable:
            return

        table = bigquery.Table(self.table_id, schema=MEASUREMENT_SCHEMA)
        table.time_partitioning = bigquery.TimePartitioning(
            type_=bigquery.TimePartitioningType.DAY,
            field=PARTITION_FIELD,
        )
        self._client.create_table(table)

        if wait_ready:
            while not self.check_if_table_exists():
                time.sleep(poll_interval_s)

    def update_table_schema(self) -> None:
        """Replace the table schema with :data:`MEASUREMENT_SCHEMA`."""
        if not self._enable:
            return

        table = self._client.get_table(self.table_id)
        table.schema = MEASUREMENT_SCHEMA
        self._client.update_table(table, ["schema"])

    def init_table(self) -> None:
        """Create the table if missing, otherwise update its schema.

        Raises:
            WarehouseError: If a BigQuery API call fails.
        """
        if not self._enable:
            logger.info("BigQuery integration disabled, skipping table init")
            return

        try:
            if not self.check_if_table_exists():
                logger.info("Creating table %s...", self.table_id)
                self.create_table(wait_ready=True)
            else:
                logger.info("Updating schema of table %s...", self.table_id)
                self.update_table_schema()
        except GoogleAPIError as exc:
            raise WarehouseError(f"failed initializing table {self.table_id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def insert_measurement(self, measurement: Measurement) -> None:
        """Stream *measurement* into the table as a single row.

        The measurement id doubles as insert id, so a retried insert of the
        same measurement is deduplicated by BigQuery.

        Raises:
            WarehouseError: If the API call fails or rejects the row.
        """
        if not self._enable:
            return

        row = measurement.model_dump(mode="json", by_alias=True)
        try:
            errors = self._client.insert_rows_json(
                self.table_id, [row], row_ids=[measurement.id]
            )
        except GoogleAPIError as exc:
            raise WarehouseError(f"failed inserting into {self.table_id}: {exc}") from exc

        if errors:
            raise WarehouseError(f"BigQuery rejected measurement {measurement.id}: {errors}")

        logger.info(
            "Inserted measurement %s with %d samples into %s",
            measurement.id,
            len(measurement.samples),
            self.table_id,
        )
