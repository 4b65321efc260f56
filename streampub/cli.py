"""Command-line publisher for exercising a stream end to end."""

from __future__ import annotations

import asyncio
import logging
import sys
import time

import click
import nats
from pydantic import BaseModel, Field
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .application.publisher import Publisher, PublisherConfig
from .domain.enums import PublishMode
from .domain.exceptions import PublishFailedError
from .domain.models import PublishAck, PublishExpectations
from .domain.patterns import SubjectPatterns
from .infrastructure.config import NATSConnectionConfig
from .infrastructure.factories import PublisherFactory
from .infrastructure.in_memory_broker import InMemoryBroker
from .infrastructure.simple_logger import SimpleLogger
from .infrastructure.stream_admin import ensure_stream


class PublishSummary(BaseModel):
    """Outcome counts for one CLI run."""

    subject: str
    mode: PublishMode
    requested: int = Field(..., ge=0)
    acks: int = 0
    duplicates: int = 0
    errors: int = 0
    still_pending: int = 0
    elapsed: float = Field(default=0.0, ge=0)
    error_samples: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.errors == 0 and self.still_pending == 0

    @property
    def throughput(self) -> float:
        return self.acks / self.elapsed if self.elapsed > 0 else 0.0

    def record_failure(self, error: BaseException) -> None:
        self.errors += 1
        if len(self.error_samples) < 5:
            self.error_samples.append(str(error))


class PublishRunner:
    """Publishes a batch of messages and reports what came back."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def run(
        self,
        publisher: Publisher,
        subject: str,
        count: int,
        size: int,
        mode: PublishMode,
        msg_id_prefix: str | None = None,
        drain_timeout: float = 5.0,
    ) -> PublishSummary:
        summary = PublishSummary(subject=subject, mode=mode, requested=count)
        payload = bytes(size)
        started = time.perf_counter()

        if mode is PublishMode.SYNC:
            for i in range(count):
                try:
                    ack = await publisher.publish(
                        subject, payload, self._expectations(msg_id_prefix, i)
                    )
                except PublishFailedError as e:
                    summary.record_failure(e)
                    continue
                self._record_ack(summary, ack)
        else:
            futures = []
            for i in range(count):
                try:
                    futures.append(
                        await publisher.publish_async(
                            subject, payload, self._expectations(msg_id_prefix, i)
                        )
                    )
                except PublishFailedError as e:
                    summary.record_failure(e)

            drain = await publisher.await_all_complete(drain_timeout)
            summary.still_pending = len(drain.still_pending)
            for future in futures:
                if not future.done():
                    continue
                if future.exception() is not None:
                    summary.record_failure(future.exception())
                else:
                    self._record_ack(summary, future.result())

        summary.elapsed = time.perf_counter() - started
        return summary

    def display_results(self, summary: PublishSummary) -> None:
        title = (
            f"[green]✓ Published {summary.acks}/{summary.requested} to {summary.subject}[/green]"
            if summary.ok
            else f"[red]✗ Publishing to {summary.subject} incomplete[/red]"
        )
        self.console.print(Panel(title, style="bold"))

        table = Table(title=f"Publish summary ({summary.mode.value})", box=box.ROUNDED)
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_row("Requested", str(summary.requested))
        table.add_row("Acknowledged", str(summary.acks))
        table.add_row("Duplicates", str(summary.duplicates))
        table.add_row("Errors", str(summary.errors))
        table.add_row("Still pending", str(summary.still_pending))
        table.add_row("Elapsed", f"{summary.elapsed:.3f}s")
        table.add_row("Throughput", f"{summary.throughput:,.0f} msg/s")
        self.console.print(table)

        if summary.error_samples:
            self.console.print("\n[bold]Errors:[/bold]")
            for sample in summary.error_samples:
                self.console.print(f"  • {sample}")

    @staticmethod
    def _expectations(msg_id_prefix: str | None, index: int) -> PublishExpectations | None:
        if msg_id_prefix is None:
            return None
        return PublishExpectations(msg_id=f"{msg_id_prefix}-{index}")

    @staticmethod
    def _record_ack(summary: PublishSummary, ack: PublishAck) -> None:
        summary.acks += 1
        if ack.duplicate:
            summary.duplicates += 1


async def _publish(
    runner: PublishRunner,
    subject: str,
    count: int,
    size: int,
    mode: PublishMode,
    publisher_config: PublisherConfig,
    servers: tuple[str, ...],
    stream: str | None,
    msg_id_prefix: str | None,
    in_memory: bool,
    verbose: bool,
) -> PublishSummary:
    logger = SimpleLogger("streampub.cli", logging.INFO if verbose else logging.WARNING)

    if in_memory:
        broker = InMemoryBroker()
        broker.add_stream(stream or "LOCAL", [subject])
        publisher = await PublisherFactory.create_in_memory_publisher(
            publisher_config, broker=broker, logger=logger
        )
        try:
            return await runner.run(
                publisher,
                subject,
                count,
                size,
                mode,
                msg_id_prefix=msg_id_prefix,
                drain_timeout=publisher_config.publish_timeout,
            )
        finally:
            await publisher.close()

    nats_config = NATSConnectionConfig.from_env(**({"servers": list(servers)} if servers else {}))
    nc = await nats.connect(**nats_config.to_connection_params())
    try:
        if stream:
            await ensure_stream(nc, stream, [subject], nats_config.js_domain, logger)
        publisher = await PublisherFactory.create_nats_publisher(
            nats_config, publisher_config, logger=logger, nc=nc
        )
        try:
            return await runner.run(
                publisher,
                subject,
                count,
                size,
                mode,
                msg_id_prefix=msg_id_prefix,
                drain_timeout=publisher_config.publish_timeout,
            )
        finally:
            await publisher.close()
    finally:
        await nc.close()


@click.group()
@click.version_option(package_name="streampub")
def main() -> None:
    """Flow-controlled JetStream publisher."""


@main.command()
@click.argument("subject")
@click.option("--count", "-n", default=1000, show_default=True, help="Messages to publish")
@click.option("--size", default=128, show_default=True, help="Payload size in bytes")
@click.option(
    "--max-pending",
    default=4000,
    show_default=True,
    help="Maximum unacknowledged asynchronous publishes",
)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in PublishMode]),
    default=PublishMode.ASYNC.value,
    show_default=True,
    help="Wait for each ack (sync) or pipeline publishes (async)",
)
@click.option(
    "--servers",
    "-s",
    multiple=True,
    help="NATS server URL (repeatable, defaults to NATS_URL or nats://localhost:4222)",
)
@click.option("--stream", help="Create this stream for SUBJECT if it does not exist")
@click.option("--msg-id-prefix", help="Attach deduplication IDs <prefix>-<n>")
@click.option(
    "--timeout",
    default=5.0,
    show_default=True,
    help="Seconds to wait for an ack, a window slot, or the final drain",
)
@click.option("--in-memory", is_flag=True, help="Publish to an in-process broker instead of NATS")
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline events")
def publish(
    subject: str,
    count: int,
    size: int,
    max_pending: int,
    mode: str,
    servers: tuple[str, ...],
    stream: str | None,
    msg_id_prefix: str | None,
    timeout: float,
    in_memory: bool,
    verbose: bool,
) -> None:
    """Publish COUNT messages to SUBJECT and report the acknowledgements."""
    if not SubjectPatterns.is_valid_publish_subject(subject):
        raise click.BadParameter(f"Invalid subject: {subject}", param_hint="SUBJECT")
    try:
        publisher_config = PublisherConfig(max_pending_async=max_pending, publish_timeout=timeout)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    runner = PublishRunner()
    summary = asyncio.run(
        _publish(
            runner,
            subject,
            count,
            size,
            PublishMode(mode),
            publisher_config,
            servers,
            stream,
            msg_id_prefix,
            in_memory,
            verbose,
        )
    )
    runner.display_results(summary)
    sys.exit(0 if summary.ok else 1)


if __name__ == "__main__":
    main()
