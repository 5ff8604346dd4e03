"""
Orquestador del pipeline ETL y procesamiento por lotes
"""
import logging
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from etl_analytics import AnalyticsGenerator
from etl_application import Repository, SourceLoader
from etl_domain import BatchResult, JobFailure, JobSuccess, TransformConfig
from etl_infrastructure import validate_source_shape
from etl_transform import CourseTransformer
from etl_validation import ActivityPolicy, CourseValidator

ANALYTICS_SUFFIX = "_analytics.json"
BATCH_REPORT_NAME = "batch_report.json"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ETLPipeline:
    def __init__(self, loader: SourceLoader, repository: Repository,
                 config: Optional[TransformConfig] = None,
                 logger: Optional[logging.Logger] = None,
                 clock: Callable[[], datetime] = _utc_now):
        self.loader = loader
        self.repository = repository
        self.config = config or TransformConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.validator = CourseValidator(self.logger)
        self.policy = ActivityPolicy(self.config.activity_policy, self.logger)

    def transform(self, source: Any, destination: str) -> Tuple[Dict[str, Any], List[str]]:
        """
        Transform one parsed export and persist it under ``destination``.

        Returns the document and its advisory warnings. Nothing is written
        unless the document passes structural validation.
        """
        validate_source_shape(source)

        transformer = CourseTransformer(source, self.logger)
        document = transformer.transform()
        warnings = transformer.warnings + self.validator.validate(document)

        if self.config.validate_activities:
            warnings.extend(self.policy.check(document))

        self.repository.save(document, destination)
        self.logger.info(f"Transformed data saved to: {self.repository.base_path / destination}")
        return document, warnings

    def process_document(self, filename: str, source: Any) -> Union[JobSuccess, JobFailure]:
        """Run one job; any failure becomes a JobFailure instead of propagating"""
        destination = self.config.output_name(filename)
        try:
            self.logger.info(f"Transforming data for {filename}")
            document, warnings = self.transform(source, destination)
            analytics = None
            if self.config.generate_analytics:
                analytics = self._write_analytics(document, destination)
            self.logger.info(f"Successfully processed {filename}")
            return JobSuccess(
                filename=filename,
                output_path=str(self.repository.base_path / destination),
                metadata=document["metadata"],
                timestamp=self.clock().isoformat(),
                warnings=warnings,
                analytics=analytics,
            )
        except Exception as e:
            self.logger.error(f"Error processing {filename}: {e}")
            return JobFailure(
                filename=filename,
                error=str(e),
                timestamp=self.clock().isoformat(),
                details=traceback.format_exc(),
            )

    def _write_analytics(self, document: Dict[str, Any], destination: str) -> Dict[str, Any]:
        """Write the analytics side file; on failure the saved document is removed too"""
        analytics_name = destination[: -len(self.config.output_suffix)] + ANALYTICS_SUFFIX
        try:
            analytics = AnalyticsGenerator(document).generate()
            self.repository.save_report(analytics_name, analytics)
        except Exception:
            self.repository.delete(destination)
            self.repository.delete(analytics_name)
            raise
        return analytics

    def process_file(self, filepath: Path) -> Union[JobSuccess, JobFailure]:
        self.logger.info(f"Processing file: {filepath.name}")
        try:
            source = self.loader.load(filepath)
        except Exception as e:
            self.logger.error(f"Error processing {filepath.name}: {e}")
            return JobFailure(filename=filepath.name, error=str(e),
                              timestamp=self.clock().isoformat(), details=traceback.format_exc())
        return self.process_document(filepath.name, source)

    def process_documents(self, documents: Dict[str, Any]) -> BatchResult:
        jobs = [(name, lambda name=name, source=source: self.process_document(name, source))
                for name, source in documents.items()]
        return self._run_batch(jobs)

    def process_directory(self, directory: Path) -> BatchResult:
        json_files = sorted(p for p in directory.glob("*.json")
                            if not p.name.endswith((self.config.output_suffix, ANALYTICS_SUFFIX))
                            and p.name != BATCH_REPORT_NAME)
        self.logger.info(f"Found {len(json_files)} JSON files")
        jobs = [(p.name, lambda p=p: self.process_file(p)) for p in json_files]
        result = self._run_batch(jobs)

        if self.config.batch_report and json_files:
            self._save_batch_report(result)
        return result

    def _run_batch(self, jobs: List[Tuple[str, Callable[[], Union[JobSuccess, JobFailure]]]]) -> BatchResult:
        """Run jobs in fixed-size groups, each group finishing before the next starts"""
        result = BatchResult(start_time=self.clock().isoformat())
        group_size = max(1, self.config.concurrent_limit)
        total_groups = (len(jobs) + group_size - 1) // group_size

        for start in range(0, len(jobs), group_size):
            group = jobs[start:start + group_size]
            self.logger.info(f"Processing batch {start // group_size + 1} of {total_groups}")
            with ThreadPoolExecutor(max_workers=group_size) as executor:
                futures = [executor.submit(job) for _, job in group]
                outcomes = [future.result() for future in futures]

            for outcome in outcomes:
                if isinstance(outcome, JobSuccess):
                    result.successful.append(outcome)
                else:
                    result.failed.append(outcome)
                result.total_processed += 1

        result.end_time = self.clock().isoformat()
        self.logger.info(f"Successful: {len(result.successful)}, Failed: {len(result.failed)}")
        return result

    def _save_batch_report(self, result: BatchResult) -> None:
        """Save a summary of the whole batch next to the outputs"""
        report = self.batch_to_dict(result)
        for entry in report["successful"]:
            entry.pop("analytics", None)
        report_path = self.repository.save_report(BATCH_REPORT_NAME, report)
        self.logger.info(f"Batch report saved to: {report_path}")

    @staticmethod
    def batch_to_dict(result: BatchResult) -> Dict[str, Any]:
        return {
            "successful": [
                {
                    "filename": s.filename,
                    "outputPath": s.output_path,
                    "metadata": s.metadata,
                    "timestamp": s.timestamp,
                    "warnings": s.warnings,
                    "analytics": s.analytics,
                }
                for s in result.successful
            ],
            "failed": [asdict(f) for f in result.failed],
            "totalProcessed": result.total_processed,
            "startTime": result.start_time,
            "endTime": result.end_time,
        }


class PipelineFactory:
    @staticmethod
    def create_default_pipeline(output_dir: Path, config: Optional[TransformConfig] = None,
                                verbose: bool = False) -> ETLPipeline:
        logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        from etl_infrastructure import JSONSourceLoader, JSONRepository
        config = config or TransformConfig()
        return ETLPipeline(
            loader=JSONSourceLoader(config.max_file_size),
            repository=JSONRepository(output_dir),
            config=config,
            logger=logging.getLogger("ETL")
        )
