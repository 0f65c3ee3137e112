from __future__ import annotations

import argparse

import orjson

from common.logger import get_logger
from common.services import build_services

log = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Scan source folders, then chunk, summarize and index pending documents."
    )
    parser.add_argument(
        "--roots", nargs="*", default=None, help="Folders to scan (default: config app.scan_roots)"
    )
    parser.add_argument(
        "--extensions",
        nargs="*",
        default=None,
        help="File extensions to ingest, e.g. py md txt (default: config app.extensions)",
    )
    parser.add_argument(
        "--reset", action="store_true", help="Delete every record and the whole index first"
    )
    parser.add_argument("--skip-scan", action="store_true", help="Only process pending records")
    parser.add_argument(
        "--skip-processing", action="store_true", help="Only create/refresh root records"
    )
    parser.add_argument(
        "--no-retry-failed",
        action="store_true",
        help="Do not retry records in error after the first pass",
    )
    parser.add_argument("--limit", type=int, default=None, help="Max records to process per pass")
    parser.add_argument("--chunk_size", type=int, default=None)
    parser.add_argument("--chunk_overlap", type=int, default=None)
    args = parser.parse_args()

    services = build_services()
    cfg = services.cfg
    try:
        if args.reset:
            services.vector_index.reset()
            services.store.purge()

        runner = services.runner()

        if not args.skip_scan:
            coordinator = services.coordinator(roots=args.roots, extensions=args.extensions)
            try:
                created = coordinator.load_master_data(
                    cfg.pipeline.stages, registry=runner.registry
                )
            except (FileNotFoundError, NotADirectoryError) as e:
                log.error("%s", e)
                raise SystemExit(1)
            log.info("MASTER OPERATION DONE. Documents created: %d", len(created))

        if not args.skip_processing:
            options = {
                k: v
                for k, v in {
                    "chunk_size": args.chunk_size,
                    "chunk_overlap": args.chunk_overlap,
                }.items()
                if v is not None
            }
            results = runner.run_pending(limit=args.limit, options=options)
            log.info(
                "OPERATIONS PROCESS COMPLETED: %d runs, %d failed",
                len(results),
                sum(1 for r in results if not r.success),
            )

            if not args.no_retry_failed:
                retried = runner.run_pending(
                    include_failed=True,
                    max_errors=cfg.pipeline.max_errors,
                    limit=args.limit,
                    options=options,
                )
                log.info("RUNNING FAILED OPERATIONS COMPLETED: %d runs", len(retried))

        print(orjson.dumps(services.store.status_counts(), option=orjson.OPT_INDENT_2).decode())
    finally:
        services.close()


if __name__ == "__main__":
    main()
