from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable
from urllib.parse import urlparse

from footprint.core.models import ResourceRecord, ResourceState, ResourceTally, ResourceType, TypeTally

logger = logging.getLogger("footprint.classifier")

# Ordered: first substring hit wins.
CONTENT_TYPE_RULES: tuple[tuple[tuple[str, ...], ResourceType], ...] = (
    (("text/html", "application/xhtml"), ResourceType.DOCUMENT),
    (("text/css",), ResourceType.STYLE),
    (("javascript", "ecmascript"), ResourceType.SCRIPT),
    (("image/", "video/", "audio/", "model/"), ResourceType.MEDIA),
    (("font/", "application/font", "application/x-font"), ResourceType.FONT),
)

EXTENSION_RULES: dict[ResourceType, frozenset[str]] = {
    ResourceType.DOCUMENT: frozenset({"html", "htm", "xhtml"}),
    ResourceType.STYLE: frozenset({"css"}),
    ResourceType.SCRIPT: frozenset({"js", "mjs", "cjs"}),
    ResourceType.MEDIA: frozenset(
        {
            "jpg", "jpeg", "png", "gif", "svg", "webp", "avif", "ico", "bmp",
            "mp4", "webm", "avi", "mov", "mp3", "wav", "ogg", "glb", "gltf",
        }
    ),
    ResourceType.FONT: frozenset({"woff", "woff2", "ttf", "otf", "eot"}),
}

# Content types that carry no category signal; fall through to the URL.
AMBIGUOUS_CONTENT_TYPES = frozenset(
    {"", "unknown", "application/octet-stream", "binary/octet-stream", "text/plain"}
)


def file_extension(url: str) -> str:
    path = urlparse(url).path
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return ""
    return last.rsplit(".", 1)[-1].lower()


def is_favicon(url: str) -> bool:
    last = urlparse(url).path.rsplit("/", 1)[-1].lower()
    return last.startswith("favicon") or file_extension(url) == "ico"


def classify_resource(content_type: str | None, url: str) -> ResourceType:
    if is_favicon(url):
        return ResourceType.MEDIA

    declared = (content_type or "").split(";", 1)[0].strip().lower()
    if declared not in AMBIGUOUS_CONTENT_TYPES:
        for needles, resource_type in CONTENT_TYPE_RULES:
            if any(needle in declared for needle in needles):
                return resource_type

    extension = file_extension(url)
    if extension:
        for resource_type, extensions in EXTENSION_RULES.items():
            if extension in extensions:
                return resource_type
    return ResourceType.OTHER


def classify(resources: Iterable[ResourceRecord]) -> ResourceTally:
    """Sum transferred bytes per category.

    A URL is counted once (first finished report wins). Records that are not
    billable (failed, unfinished, or status >= 400) stay out of every total.
    """
    sizes: dict[ResourceType, int] = defaultdict(int)
    counts: dict[ResourceType, int] = defaultdict(int)
    seen: set[str] = set()
    total = 0
    counted = 0
    excluded = 0
    duplicates = 0

    for record in resources:
        if record.state != ResourceState.FINISHED:
            excluded += 1
            continue
        if record.url in seen:
            duplicates += 1
            continue
        seen.add(record.url)
        if not record.billable:
            excluded += 1
            continue

        resource_type = classify_resource(record.content_type, record.url)
        size = max(0, int(record.transfer_size))
        sizes[resource_type] += size
        counts[resource_type] += 1
        total += size
        counted += 1

    tally = ResourceTally(
        by_type={
            resource_type: TypeTally(bytes=sizes[resource_type], count=counts[resource_type])
            for resource_type in ResourceType
        },
        total_bytes=total,
        resource_count=counted,
        excluded_count=excluded,
        duplicate_count=duplicates,
    )
    _log_summary(tally)
    return tally


def _log_summary(tally: ResourceTally) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        f"[Classifier] {tally.resource_count} resources, {tally.total_bytes} bytes "
        f"({tally.total_bytes / 1024:.2f} KB), {tally.excluded_count} excluded, {tally.duplicate_count} duplicates"
    )
    for resource_type, type_tally in tally.by_type.items():
        share = (type_tally.bytes / tally.total_bytes * 100) if tally.total_bytes else 0.0
        logger.debug(f"[Classifier]   {resource_type.value}: {type_tally.bytes} bytes - {share:.1f}%")
