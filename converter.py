import argparse
import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import requests
from tqdm import tqdm

from catalog import EnumerationMode, list_channels, list_vod_categories, paginate_vod_pages
from normalizer import Channel, VodItem, normalize_channels, normalize_vod_items, vod_group
from playlist import serialize, write_playlist
from stalker import StalkerPortal, StalkerPortalError, ValidationError, normalize_mac

logger = logging.getLogger(__name__)


@dataclass
class ConversionOptions:
    """
    Tunables for one conversion run.

    Parameters:
        mode (EnumerationMode): Flat category=* sweep or per-category walk.
        workers (int): Concurrent create_link calls; 1 keeps the run strictly sequential.
        timeout (float): Timeout for HTTP requests in seconds.
        retries (int): Transport-level retries per request.
        backoff_factor (float): Backoff factor between retries.
        timezone (str): Timezone sent in the device cookie.
        max_pages (Optional[int]): Maximum pages fetched per catalog listing.
    """

    mode: EnumerationMode = EnumerationMode.FLAT
    workers: int = 1
    timeout: float = 30
    retries: int = 0
    backoff_factor: float = 0.5
    timezone: str = "Europe/London"
    max_pages: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.mode, EnumerationMode):
            self.mode = EnumerationMode(self.mode)
        if not isinstance(self.workers, int) or self.workers < 1:
            raise ValueError("workers must be a positive integer.")
        if self.max_pages is not None and (not isinstance(self.max_pages, int) or self.max_pages < 1):
            raise ValueError("max_pages must be a positive integer.")


@dataclass
class ConversionResult:
    channels: List[Channel]
    movies: List[VodItem]
    series: List[VodItem]
    m3u_content: str
    raw_responses: Dict[str, object] = field(default_factory=dict)

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def movie_count(self) -> int:
        return len(self.movies)

    @property
    def series_count(self) -> int:
        return len(self.series)

    @property
    def total_count(self) -> int:
        return self.channel_count + self.movie_count + self.series_count

    def to_response(self, session_id: str, include_raw: bool = False) -> Dict[str, object]:
        """Payload returned to the conversion API caller."""
        response = {
            "success": True,
            "sessionId": session_id,
            "channelCount": self.channel_count,
            "movieCount": self.movie_count,
            "seriesCount": self.series_count,
            "totalCount": self.total_count,
            "m3uContent": self.m3u_content,
        }
        if include_raw:
            response["rawResponses"] = self.raw_responses
        return response


def collect_vod(
    portal: StalkerPortal,
    kind: str,
    options: ConversionOptions,
    progress_callback: Optional[Callable[[int], None]] = None,
    keep_raw: bool = False,
) -> Tuple[List[VodItem], List[Dict]]:
    """
    Walk one VOD catalog and resolve every entry, page by page.

    Returns the playable items in catalog order and, when `keep_raw` is set,
    the raw records seen (an empty list otherwise).
    """
    if options.mode is EnumerationMode.CATEGORY:
        scopes = [(c.id, vod_group(kind, c.name)) for c in list_vod_categories(portal, kind)]
    else:
        scopes = [("*", vod_group(kind))]

    items: List[VodItem] = []
    raw_records: List[Dict] = []
    seen = 0
    for category_id, group in scopes:
        for records in paginate_vod_pages(portal, kind, category_id, options.max_pages):
            seen += len(records)
            if keep_raw:
                raw_records.extend(records)
            items.extend(normalize_vod_items(
                portal,
                records,
                kind,
                group,
                workers=options.workers,
                progress_callback=progress_callback,
            ))

    logger.info(f"Resolved {len(items)} of {seen} {kind} entries.")
    return items, raw_records


def convert(
    portal_url: str,
    mac_address: str,
    options: Optional[ConversionOptions] = None,
    progress_callback: Optional[Callable[[int], None]] = None,
    session: Optional[requests.Session] = None,
    include_raw: bool = False,
) -> ConversionResult:
    """
    Convert a portal's live and VOD catalogs into an M3U playlist.

    Handshake and listing failures abort the run; a VOD entry whose stream
    link cannot be resolved is left out.

    Parameters:
        portal_url (str): Base URL of the portal.
        mac_address (str): Device MAC address in any common notation.
        options (Optional[ConversionOptions]): Run tunables.
        progress_callback (Optional[Callable[[int], None]]): Called with 1 per resolved VOD entry.
        session (Optional[requests.Session]): Session to use instead of a fresh one.
        include_raw (bool): Keep the raw listing payloads on the result.

    Returns:
        ConversionResult: Entities, counts and the playlist text.

    Raises:
        ValidationError: portal_url or mac_address is missing or not a string.
        TransportError: The portal could not be reached.
        ProtocolError: Handshake or a listing call failed.
    """
    if not isinstance(portal_url, str) or not isinstance(mac_address, str) \
            or not portal_url.strip() or not mac_address.strip():
        raise ValidationError("Portal URL and MAC address are required")

    options = options or ConversionOptions()
    base_url = portal_url.strip().rstrip("/")
    mac = normalize_mac(mac_address.strip())
    logger.info(f"Converting {base_url} for MAC {mac} ({options.mode.value} mode)")

    with StalkerPortal(
        base_url,
        mac,
        timezone=options.timezone,
        timeout=options.timeout,
        retries=options.retries,
        backoff_factor=options.backoff_factor,
        session=session,
    ) as portal:
        portal.handshake()

        channels_raw = list_channels(portal)
        channels = normalize_channels(channels_raw)

        movies, movies_raw = collect_vod(portal, "movies", options, progress_callback, include_raw)
        series, series_raw = collect_vod(portal, "series", options, progress_callback, include_raw)

    result = ConversionResult(
        channels=channels,
        movies=movies,
        series=series,
        m3u_content=serialize(channels, movies, series),
        raw_responses={
            "live": channels_raw,
            "vodMovies": movies_raw,
            "vodSeries": series_raw,
        } if include_raw else {},
    )
    logger.info(
        f"Conversion finished: {result.channel_count} channels, {result.movie_count} movies, "
        f"{result.series_count} series episodes."
    )
    return result


# -------------------------------------------------------------------------
# COMMAND LINE
# -------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stalker-m3u",
        description="Convert a Stalker middleware portal into an M3U playlist.",
    )
    parser.add_argument("portal_url", help="Portal base URL, e.g. http://example.com/c")
    parser.add_argument("mac_address", help="Device MAC address, e.g. 00:1A:79:12:34:56")
    parser.add_argument("-o", "--output", default="playlist.m3u", help="Playlist file to write")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in EnumerationMode],
        default=EnumerationMode.FLAT.value,
        help="Walk VOD catalogs in one sweep (flat) or per category",
    )
    parser.add_argument("--workers", type=int, default=1, help="Concurrent stream link resolutions")
    parser.add_argument("--timeout", type=float, default=30, help="HTTP timeout in seconds")
    parser.add_argument("--retries", type=int, default=0, help="Transport retries per request")
    parser.add_argument("--max-pages", type=int, default=None, help="Maximum pages per catalog listing")
    parser.add_argument("--timezone", default="Europe/London", help="Timezone sent to the portal")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        options = ConversionOptions(
            mode=EnumerationMode(args.mode),
            workers=args.workers,
            timeout=args.timeout,
            retries=args.retries,
            timezone=args.timezone,
            max_pages=args.max_pages,
        )
    except ValueError as e:
        logger.error(f"Invalid option: {e}")
        return 2

    progress_bar = tqdm(desc="Resolving VOD streams", unit="item", ncols=100)

    def progress_callback(advance: int) -> None:
        progress_bar.update(advance)

    try:
        result = convert(args.portal_url, args.mac_address, options, progress_callback)
    except (StalkerPortalError, ValueError) as e:
        logger.error(f"Conversion failed: {e}")
        return 1
    finally:
        progress_bar.close()

    try:
        write_playlist(args.output, result.m3u_content)
    except OSError as e:
        logger.error(f"Could not write playlist to {args.output}: {e}")
        return 1
    print(
        f"{result.channel_count} channels, {result.movie_count} movies, "
        f"{result.series_count} series episodes ({result.total_count} total) -> {args.output}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
