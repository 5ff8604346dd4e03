"""
Punto de entrada del ETL de exportaciones de cursos
"""
from dataclasses import replace
from pathlib import Path
import argparse
from etl_domain import ConfigError, JobFailure
from etl_infrastructure import load_config
from etl_pipeline import PipelineFactory

def main(argv=None):
    parser = argparse.ArgumentParser(description="ETL Pipeline for course authoring exports")
    parser.add_argument("input", type=Path, help="Course export JSON file or directory of them")
    parser.add_argument("output_dir", type=Path, help="Output directory for normalized JSON files")
    parser.add_argument("--config", type=Path, default=Path("config.json"), help="Optional config.json")
    parser.add_argument("--analytics", action="store_true", help="Write an analytics file per course")
    parser.add_argument("--concurrency", type=int, help="Files processed per concurrent group")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        parser.error(str(e))
    if args.analytics:
        config = replace(config, generate_analytics=True)
    if args.concurrency:
        config = replace(config, concurrent_limit=args.concurrency)

    pipeline = PipelineFactory.create_default_pipeline(args.output_dir, config, verbose=args.verbose)
    if args.input.is_dir():
        result = pipeline.process_directory(args.input)
        print(f"Processed {len(result.successful)} courses successfully, {len(result.failed)} failed")
        for failure in result.failed:
            print(f"  {failure.filename}: {failure.error}")
        return 1 if result.failed else 0

    outcome = pipeline.process_file(args.input)
    if isinstance(outcome, JobFailure):
        print(f"Failed to process {outcome.filename}: {outcome.error}")
        return 1
    print(f"Saved {outcome.output_path}")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
