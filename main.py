"""CLI entry point for the job extraction pipeline."""

import argparse
import asyncio
import logging
import sys

from job_extraction.browser.content import PageContentExtractor
from job_extraction.browser.session import BrowserSession
from job_extraction.core.config import PipelineOptions, Settings
from job_extraction.core.db import JobStore, add_discovered_job, init_db, job_record_from_document
from job_extraction.core.errors import ExtractionError, PipelineAborted
from job_extraction.core.schemas import BatchResult, JobStatus, PipelineResult
from job_extraction.llm.completion import CompletionService
from job_extraction.pipeline.orchestrator import ExtractionPipeline
from job_extraction.taxonomy.registry import TaxonomyRegistry


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job extraction pipeline - turn discovered job URLs into structured records",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- extract subcommand ---
    extract_parser = subparsers.add_parser("extract", help="Run the pipeline for one discovered job")
    extract_parser.add_argument("--job-id", required=True, help="Id of a job in 'discovered' state")
    extract_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without launching a browser",
    )
    extract_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Record stage failures and keep going instead of aborting",
    )
    _add_common(extract_parser)

    # --- run subcommand ---
    run_parser = subparsers.add_parser("run", help="Run the pipeline for the oldest discovered jobs")
    run_parser.add_argument("--limit", type=int, help="Max jobs to process (default: pipeline.batch_limit)")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the jobs that would be processed without launching a browser",
    )
    run_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Record stage failures and keep going instead of aborting",
    )
    _add_common(run_parser)

    # --- add-job subcommand ---
    add_parser = subparsers.add_parser("add-job", help="Seed a job in 'discovered' state")
    add_parser.add_argument("--job-id", required=True, help="Stable external job id")
    add_parser.add_argument("--url", required=True, help="Job posting URL")
    add_parser.add_argument("--company", help="Company name (optional)")
    _add_common(add_parser)

    # --- validate-config subcommand ---
    validate_parser = subparsers.add_parser(
        "validate-config",
        help="Load and validate settings and the taxonomy without running anything",
    )
    _add_common(validate_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _options(settings: Settings, args: argparse.Namespace) -> PipelineOptions:
    options = PipelineOptions.from_settings(settings)
    if getattr(args, "continue_on_error", False):
        options = options.model_copy(update={"stop_on_error": False})
    return options


def print_result(result: PipelineResult) -> None:
    summary = result.summary
    status = "OK" if result.success else "FAILED"
    print(f"[{status}] job {result.job_id} (workflow {result.workflow_id}, {result.duration_ms} ms)")
    print(f"  Stages: {summary.get('completed_stages')}/{summary.get('total_stages')} completed")
    if summary.get("domain"):
        print(
            f"  Classification: {summary['domain']}/{summary['sub_domain']}/{summary['role']}"
            f" ({summary.get('experience_level')})"
        )
    if summary.get("quality_score") is not None:
        print(
            f"  Quality: {summary['quality_score']:.2f} "
            f"({'passed' if summary.get('validation_passed') else 'failed'})"
        )
    print(f"  Final status: {summary.get('final_status')}")
    for error in result.errors:
        print(f"  Error in {error.stage} [{error.error_type}]: {error.message}")


def print_batch(batch: BatchResult) -> None:
    print(
        f"\nBatch complete: {batch.successful_jobs}/{batch.total_jobs} succeeded "
        f"({batch.success_rate:.0%}) in {batch.duration_ms} ms."
    )
    for result in batch.results:
        print_result(result)


def dry_run(settings: Settings, registry: TaxonomyRegistry, store: JobStore, job_ids: list[str]) -> None:
    """Print what would happen without launching a browser or calling a model."""
    print(f"[DRY RUN] Taxonomy: {len(registry.domains())} domains from {registry.directory}")
    print(f"[DRY RUN] Provider: {settings.llm.provider} (model: {settings.llm.model or 'default'})")
    print(f"[DRY RUN] Thresholds: {registry.quality.model_dump()}")
    print(f"[DRY RUN] {len(job_ids)} jobs would be processed")
    for job_id in job_ids:
        document = store.get(job_id) or {}
        print(f"  {job_id}: {document.get('url') or document.get('source_url')}")
    print("[DRY RUN] Would write 0 records (no browser in dry-run)")


async def run(
    settings: Settings,
    registry: TaxonomyRegistry,
    store: JobStore,
    options: PipelineOptions,
    *,
    job_id: str | None = None,
    limit: int | None = None,
) -> bool:
    """Run the pipeline with a real browser. Returns True if every job succeeded."""
    completion = CompletionService.from_config(settings.llm)

    async with BrowserSession(settings.browser) as session:
        extractor = PageContentExtractor(
            session.page,
            retry_delay_s=settings.browser.retry_delay_s,
            settle_delay_s=settings.browser.settle_delay_s,
        )
        pipeline = ExtractionPipeline(
            registry,
            completion,
            extractor,
            store,
            options,
            max_prompt_chars=settings.llm.max_prompt_chars,
            inter_job_delay_s=settings.pipeline.inter_job_delay_s,
        )

        if job_id is not None:
            document = store.get(job_id)
            if document is None:
                msg = f"Job '{job_id}' not found"
                raise ValueError(msg)
            if document.get("status") != JobStatus.DISCOVERED.value:
                msg = f"Job '{job_id}' has status '{document.get('status')}', expected 'discovered'"
                raise ValueError(msg)
            try:
                result = await pipeline.run(job_record_from_document(document))
            except PipelineAborted as e:
                result = pipeline.build_result(e.state)
            print_result(result)
            return result.success

        batch = await pipeline.run_discovered(limit or settings.pipeline.batch_limit)

    print_batch(batch)
    return batch.failed_jobs == 0


def cmd_add_job(args: argparse.Namespace, store: JobStore) -> None:
    extra = {"company": args.company} if args.company else {}
    document = add_discovered_job(store, args.job_id, args.url, **extra)
    print(f"Added job {document['id']} ({document['url']}) with status '{document['status']}'")


def cmd_validate_config(settings: Settings, registry: TaxonomyRegistry) -> None:
    hierarchy = registry.hierarchy()
    print("Settings OK")
    print(f"Taxonomy OK: {len(hierarchy)} domains")
    for domain, sub_domains in hierarchy.items():
        roles = sum(len(r) for r in sub_domains.values())
        print(f"  {domain}: {len(sub_domains)} sub-domains, {roles} roles")
    print(f"Quality thresholds: {registry.quality.model_dump()}")
    print(f"LLM provider: {settings.llm.provider}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
        registry = TaxonomyRegistry.from_directory(settings.taxonomy.directory)
    except (FileNotFoundError, ValueError, ExtractionError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "validate-config":
        cmd_validate_config(settings, registry)
        return

    conn = init_db(settings.database.path)
    store = JobStore(conn)
    ok = True
    try:
        if args.command == "add-job":
            cmd_add_job(args, store)
        elif args.dry_run:
            if args.command == "extract":
                job_ids = [args.job_id]
            else:
                limit = args.limit or settings.pipeline.batch_limit
                job_ids = [d["id"] for d in store.list_by_status(JobStatus.DISCOVERED, limit)]
            dry_run(settings, registry, store, job_ids)
        else:
            ok = asyncio.run(run(
                settings,
                registry,
                store,
                _options(settings, args),
                job_id=args.job_id if args.command == "extract" else None,
                limit=getattr(args, "limit", None),
            ))
    except (FileNotFoundError, ImportError, ValueError, ExtractionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        conn.close()

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
