"""
Discovery fan-in.

Runs every configured backend of a target group concurrently and collects
what they report before a deadline. Only the latest batch of each source is
kept. Sources that have not reported by the deadline are absent from the
result; that is normal, backends are best effort. A backend that cannot be
created is an error.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import timedelta

import structlog

from o11y_deploy.core.errors import DiscoveryError
from o11y_deploy.discovery.base import Batch, Discoverer, DiscoveryConfig
from o11y_deploy.discovery.targetgroup import TargetGroup
from o11y_deploy.durations import format_duration, parse_duration
from o11y_deploy.labels import LabelSet

logger = structlog.get_logger()


def start_discoverers(configs: Sequence[DiscoveryConfig]) -> list[Discoverer]:
    """Create one discoverer per configuration.

    Sources are named ``<key>/<n>``, ``n`` counting per key.

    Raises:
        DiscoveryError: no configurations, or a backend could not be created
    """
    if not configs:
        raise DiscoveryError("no discovery sources configured")

    counters: dict[str, int] = {}
    discoverers = []
    for cfg in configs:
        index = counters.get(cfg.key, 0)
        counters[cfg.key] = index + 1
        source = f"{cfg.key}/{index}"
        try:
            discoverers.append(cfg.new_discoverer(source))
        except DiscoveryError:
            raise
        except Exception as exc:
            raise DiscoveryError(
                f"could not create new discoverer: {exc}", {"source": source}
            ) from exc
    return discoverers


async def collect(
    discoverers: Sequence[Discoverer], sync_time: timedelta
) -> dict[str, list[TargetGroup]]:
    """Run ``discoverers`` until the deadline and return the last batch per source.

    Returns early once every discoverer has finished and the queue is drained,
    since nothing more can arrive.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + sync_time.total_seconds()
    queue: asyncio.Queue[Batch] = asyncio.Queue()
    tasks = {asyncio.create_task(d.run(queue), name=d.source): d for d in discoverers}
    pending = set(tasks)
    latest: dict[str, list[TargetGroup]] = {}

    try:
        while True:
            while not queue.empty():
                source, groups = queue.get_nowait()
                latest[source] = list(groups)
            remaining = deadline - loop.time()
            if remaining <= 0 or not pending:
                break

            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait(
                {getter, *pending}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if getter.done() and not getter.cancelled():
                source, groups = getter.result()
                latest[source] = list(groups)
            else:
                getter.cancel()

            for task in done - {getter}:
                pending.discard(task)
                if not task.cancelled() and task.exception() is not None:
                    logger.warning(
                        "discoverer_failed",
                        source=tasks[task].source,
                        error=str(task.exception()),
                    )
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    return latest


def merge_batches(
    discoverers: Sequence[Discoverer], latest: dict[str, list[TargetGroup]]
) -> list[LabelSet]:
    """Deduplicated union of the latest batches, in source then position order."""
    label_sets: list[LabelSet] = []
    seen: set[LabelSet] = set()
    for discoverer in discoverers:
        for group in latest.get(discoverer.source, []):
            for label_set in group.label_sets():
                if label_set in seen:
                    continue
                seen.add(label_set)
                label_sets.append(label_set)
    return label_sets


async def populate_targets(
    configs: Sequence[DiscoveryConfig], sync_time: str | timedelta
) -> list[LabelSet]:
    """Discover the label sets of one target group.

    Raises:
        DiscoveryError: if no backend is configured or one cannot be created
    """
    wait = parse_duration(sync_time)
    discoverers = start_discoverers(configs)
    logger.info("discovery_waiting", sources=len(discoverers), sync_time=format_duration(wait))

    latest = await collect(discoverers, wait)
    label_sets = merge_batches(discoverers, latest)

    missing = [d.source for d in discoverers if d.source not in latest]
    if missing:
        logger.info("discovery_sources_absent", sources=missing)
    logger.info("discovery_done", reported=len(latest), targets=len(label_sets))
    return label_sets


def discover_label_sets(
    configs: Sequence[DiscoveryConfig], sync_time: str | timedelta
) -> list[LabelSet]:
    """Blocking wrapper around populate_targets."""
    return asyncio.run(populate_targets(configs, sync_time))
