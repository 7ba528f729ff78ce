import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional

from stalker import ProtocolError, StalkerPortal

logger = logging.getLogger(__name__)

# Content kind -> portal "type" parameter
PORTAL_TYPES = {
    "movies": "vod",
    "series": "series",
}


class EnumerationMode(Enum):
    """How the VOD catalogs are walked."""

    # One category=* sweep per kind, flat "Movies"/"Series" groups
    FLAT = "flat"
    # Every category paginated separately, category-qualified groups
    CATEGORY = "category"


@dataclass(frozen=True)
class Category:
    id: str
    name: str


def portal_type(kind: str) -> str:
    try:
        return PORTAL_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown content kind: {kind}") from None


def extract_records(json_response: Optional[Dict]) -> List[Dict]:
    """
    Return the list of records carried by a portal envelope.

    Most endpoints answer ``{"js": {"data": [...]}}``; some portals put the
    list straight under ``js``. A single dict is treated as a one-item list.
    Anything else yields no records.
    """
    if not json_response:
        return []
    js_data = json_response.get("js")
    data = js_data.get("data") if isinstance(js_data, dict) else js_data
    if isinstance(data, dict):
        logger.warning("data field is a dictionary, converting to single-item list.")
        data = [data]
    elif not isinstance(data, list):
        if data is not None:
            logger.error(f"data field is neither a list nor a dictionary: {type(data).__name__}")
        return []
    return [record for record in data if isinstance(record, dict)]


# -------------------------------------------------------------------------
# LIVE CHANNELS
# -------------------------------------------------------------------------

def list_channels(portal: StalkerPortal) -> Dict:
    """
    Fetch the whole live channel list in one call.

    The portal returns every channel at once, so there is no pagination.
    """
    params = OrderedDict([
        ("type", "itv"),
        ("action", "get_all_channels"),
        ("JsHttpRequest", "1-xml"),
    ])
    json_response = portal.get(params, step="channel listing")
    logger.info(f"Fetched {len(extract_records(json_response))} channel records.")
    return json_response


# -------------------------------------------------------------------------
# VOD CATEGORIES
# -------------------------------------------------------------------------

def list_vod_categories(portal: StalkerPortal, kind: str) -> List[Category]:
    """
    Fetch the categories of the movie or series catalog.

    Parameters:
        portal (StalkerPortal): Authenticated portal client.
        kind (str): "movies" or "series".

    Returns:
        List[Category]: Categories in portal order. Entries without an id
        and the catch-all "*" entry are skipped; blank names become "Unknown".
    """
    params = OrderedDict([
        ("type", portal_type(kind)),
        ("action", "get_categories"),
        ("JsHttpRequest", "1-xml"),
    ])
    json_response = portal.get(params, step=f"{kind} category listing")

    categories = []
    for record in extract_records(json_response):
        category_id = record.get("id")
        if category_id is None or str(category_id).strip() in ("", "*"):
            continue
        name = str(record.get("title") or record.get("name") or "").strip() or "Unknown"
        categories.append(Category(id=str(category_id), name=name))

    logger.info(f"Fetched {len(categories)} {kind} categories.")
    return categories


# -------------------------------------------------------------------------
# VOD ORDERED LIST (PAGINATED)
# -------------------------------------------------------------------------

def list_vod_ordered_list(portal: StalkerPortal, kind: str, page: int, category: str = "*") -> Dict:
    """
    Fetch one 1-indexed page of a catalog's ordered list.
    """
    params = OrderedDict([
        ("type", portal_type(kind)),
        ("action", "get_ordered_list"),
        ("movie_id", "0"),
        ("season_id", "0"),
        ("episode_id", "0"),
        ("category", category),
        ("fav", "0"),
        ("sortby", "added"),
        ("hd", "0"),
        ("not_ended", "0"),
        ("p", page),
        ("JsHttpRequest", "1-xml"),
    ])
    return portal.get(params, step=f"{kind} listing")


def paginate_vod_pages(
    portal: StalkerPortal,
    kind: str,
    category: str = "*",
    max_pages: Optional[int] = None,
) -> Iterator[List[Dict]]:
    """
    Yield the records of successive pages of a catalog listing.

    Pagination starts at page 1 and ends at the first page with no records,
    or at the first non-2xx response, which the portal uses to signal the
    end of data. Some portals answer every page past the last with the last
    page again, so a page repeating the previous one also ends the walk.
    Transport failures and malformed JSON still propagate.

    Parameters:
        portal (StalkerPortal): Authenticated portal client.
        kind (str): "movies" or "series".
        category (str): Category id, or "*" for the whole catalog.
        max_pages (Optional[int]): Maximum number of pages to fetch.
    """
    page_number = 1
    previous_ids = None
    while max_pages is None or page_number <= max_pages:
        try:
            json_response = list_vod_ordered_list(portal, kind, page_number, category)
        except ProtocolError as e:
            if e.status_code is None:
                raise
            logger.warning(
                f"{kind} page {page_number} (category {category}) returned HTTP {e.status_code}, "
                f"treating as end of data."
            )
            return

        records = extract_records(json_response)
        if not records:
            logger.debug(f"No data found on {kind} page {page_number} (category {category}), stopping.")
            return

        page_ids = [record.get("id", record) for record in records]
        if page_ids == previous_ids:
            logger.warning(
                f"{kind} page {page_number} (category {category}) repeats the previous page, stopping."
            )
            return
        previous_ids = page_ids

        logger.debug(f"Fetched {len(records)} {kind} records on page {page_number} (category {category}).")
        yield records
        page_number += 1

    logger.info(f"Stopped {kind} pagination for category {category} at max_pages={max_pages}.")


def paginate_vod_items(
    portal: StalkerPortal,
    kind: str,
    category: str = "*",
    max_pages: Optional[int] = None,
) -> Iterator[Dict]:
    """Flattened view of :func:`paginate_vod_pages`."""
    for records in paginate_vod_pages(portal, kind, category, max_pages):
        yield from records
