# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""CLI entry point for the trace index writer.

Usage:
    python -m trace_index.cli bucket frontend
    python -m trace_index.cli bucket frontend --count 10
    python -m trace_index.cli buckets frontend
    python -m trace_index.cli ingest spans.jsonl --config-dir config
    python -m trace_index.cli ingest spans.jsonl --batch-size 500
"""

import json as json_mod
import sys
from concurrent.futures import wait
from pathlib import Path

import click

from trace_index.indexing.bucketing import BUCKET_COUNT, bucket as bucket_of, partition_buckets
from trace_index.utils.config_loader import ConfigLoader
from trace_index.utils.logger import setup_logger, get_logger


@click.group()
def cli():
    """Trace index writer: deduplicated index ingestion."""
    pass


@cli.command()
@click.argument("key")
@click.option(
    "--count",
    default=BUCKET_COUNT,
    show_default=True,
    type=int,
    help="Number of buckets.",
)
def bucket(key, count):
    """Print the bucket KEY maps to."""
    try:
        click.echo(bucket_of(key, count))
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("partition_key")
def buckets(partition_key):
    """List the partitions a reader queries for PARTITION_KEY."""
    for key, b in partition_buckets(partition_key):
        click.echo(f"{key}\t{b}")


@cli.command()
@click.argument("spans_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config-dir",
    default="config",
    help="Path to config directory containing YAML files.",
)
@click.option(
    "--batch-size",
    default=100,
    show_default=True,
    type=int,
    help="Spans indexed per batch.",
)
def ingest(spans_file, config_dir, batch_size):
    """Index spans from a JSON-lines file."""
    try:
        loader = ConfigLoader(config_dir=config_dir)
        config = loader.load()

        setup_logger(config)
        logger = get_logger()

        from trace_index.span import Span
        from trace_index.storage import IndexStorage

        failed = 0
        spans_read = 0
        with IndexStorage(config) as storage:
            consumer = storage.span_consumer()
            batch = []
            lines = Path(spans_file).read_text(encoding="utf-8").splitlines()
            for line in lines:
                if not line.strip():
                    continue
                batch.append(Span.from_dict(json_mod.loads(line)))
                spans_read += 1
                if len(batch) >= batch_size:
                    failed += _flush(consumer, batch)
                    batch = []
            if batch:
                failed += _flush(consumer, batch)

            stats = storage.stats()

        permitted = sum(s["permitted"] for s in stats)
        suppressed = sum(s["suppressed"] for s in stats)
        logger.info(f"Ingested {spans_read} spans from {spans_file}")

        click.echo(f"\n--- Ingest Summary ({spans_file}) ---")
        click.echo(f"Spans read:      {spans_read}")
        click.echo(f"Writes issued:   {permitted}")
        click.echo(f"Suppressed:      {suppressed}")
        click.echo(f"Failed:          {failed}")
        for s in stats:
            click.echo(
                f"  {s['table']:<24} permitted={s['permitted']} suppressed={s['suppressed']}"
            )

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _flush(consumer, batch) -> int:
    """Index one batch, wait for its writes, and return how many failed."""
    futures = consumer.accept(batch)
    done, _ = wait(futures)
    return sum(1 for f in done if f.exception() is not None)


if __name__ == "__main__":
    cli()
