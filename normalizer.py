import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from catalog import extract_records
from resolver import resolve_all
from stalker import StalkerPortal

logger = logging.getLogger(__name__)

LIVE_GROUP = "Live TV"
VOD_GROUPS = {
    "movies": "Movies",
    "series": "Series",
}


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    cmd: str
    logo: str = ""
    number: str = ""
    group: str = LIVE_GROUP

    @property
    def artwork(self) -> str:
        return self.logo


@dataclass(frozen=True)
class VodItem:
    """A movie or a series episode with an already resolved stream URL."""

    id: str
    name: str
    cmd: str
    poster: str = ""
    group: str = ""

    @property
    def artwork(self) -> str:
        return self.poster


def _first_non_empty(d: Dict[str, Any], keys, default: str = "") -> str:
    for k in keys:
        v = d.get(k)
        if v is not None and str(v).strip():
            return str(v)
    return default


def vod_group(kind: str, category_name: Optional[str] = None) -> str:
    """
    Group title for a VOD item: "Movies", or "Movies – <category>" when the
    catalog is walked per category.
    """
    label = VOD_GROUPS[kind]
    if category_name:
        return f"{label} – {category_name}"
    return label


# -------------------------------------------------------------------------
# CHANNELS
# -------------------------------------------------------------------------

def normalize_channel(record: Dict[str, Any]) -> Optional[Channel]:
    cmd = _first_non_empty(record, ("cmd",))
    if not cmd:
        return None
    channel_id = _first_non_empty(record, ("id",))
    return Channel(
        id=channel_id,
        name=_first_non_empty(record, ("name",), "Unknown Channel"),
        cmd=cmd,
        logo=_first_non_empty(record, ("logo",)),
        number=_first_non_empty(record, ("number",), channel_id),
    )


def normalize_channels(json_response: Optional[Dict]) -> List[Channel]:
    """Map a get_all_channels response to channels, dropping those without a command."""
    channels = []
    skipped = 0
    for record in extract_records(json_response):
        channel = normalize_channel(record)
        if channel is None:
            skipped += 1
            continue
        channels.append(channel)
    if skipped:
        logger.info(f"Skipped {skipped} channels without a command.")
    return channels


# -------------------------------------------------------------------------
# MOVIES & SERIES
# -------------------------------------------------------------------------

def normalize_vod_item(record: Dict[str, Any], stream_url: str, group: str) -> VodItem:
    return VodItem(
        id=_first_non_empty(record, ("id",)),
        name=_first_non_empty(record, ("name", "o_name"), "Unknown"),
        cmd=stream_url,
        poster=_first_non_empty(record, ("screenshot_uri", "pic")),
        group=group,
    )


def normalize_vod_items(
    portal: StalkerPortal,
    records: Iterable[Dict[str, Any]],
    kind: str,
    group: str,
    workers: int = 1,
    progress_callback: Optional[Callable[[int], None]] = None,
) -> List[VodItem]:
    """
    Resolve and normalize one batch of ordered-list records.

    Records without a command are skipped before any request is made;
    records whose stream link cannot be resolved are dropped. Output keeps
    the order of `records`.

    Parameters:
        portal (StalkerPortal): Authenticated portal client.
        records (Iterable[Dict[str, Any]]): Raw ordered-list records.
        kind (str): "movies" or "series".
        group (str): Group title given to every item of the batch.
        workers (int): Concurrency bound for the create_link calls.
        progress_callback (Optional[Callable[[int], None]]): Progress hook, see resolver.resolve_all.

    Returns:
        List[VodItem]: Playable items.
    """
    playable = [record for record in records if _first_non_empty(record, ("cmd",))]
    stream_urls = resolve_all(
        portal,
        [str(record["cmd"]) for record in playable],
        kind,
        workers=workers,
        progress_callback=progress_callback,
    )

    items = []
    for record, stream_url in zip(playable, stream_urls):
        if not stream_url:
            logger.debug(f"Dropping {kind} item {record.get('id')!r}: stream link not resolved.")
            continue
        items.append(normalize_vod_item(record, stream_url, group))
    return items
