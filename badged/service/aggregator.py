"""Download count aggregation over release API bodies."""

from collections.abc import Mapping
from typing import Any


def release_download_count(release: Mapping[str, Any]) -> int:
    """Sum the download counters of every asset of a single release."""
    total = 0
    for asset in release.get("assets") or []:
        if isinstance(asset, Mapping):
            count = asset.get("download_count") or 0
            if isinstance(count, int):
                total += count
    return total


def download_count(body: Any) -> int:
    """
    Get the download count of a releases API body.

    A mapping is a single release; a list is a page of releases. Anything
    else counts as zero.
    """
    if isinstance(body, list):
        # Array of releases
        return sum(
            release_download_count(release)
            for release in body
            if isinstance(release, Mapping)
        )
    if isinstance(body, Mapping):
        return release_download_count(body)
    return 0
