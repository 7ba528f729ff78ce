import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Callable, List, Optional, Sequence

from stalker import StalkerPortal, StalkerPortalError

logger = logging.getLogger(__name__)


def resolve_stream_link(portal: StalkerPortal, cmd: str, kind: str) -> str:
    """
    Turn a catalog entry's cmd into a playable URL with a create_link call.

    Movies and series both resolve through the vod type; series episodes add
    series=1.

    Parameters:
        portal (StalkerPortal): Authenticated portal client.
        cmd (str): Raw command string from the ordered list.
        kind (str): "movies" or "series".

    Returns:
        str: The resolved URL, or "" when resolution failed for any reason.
    """
    params = OrderedDict([
        ("type", "vod"),
        ("action", "create_link"),
        ("cmd", cmd),
    ])
    if kind == "series":
        params["series"] = "1"
    params["JsHttpRequest"] = "1-xml"

    try:
        json_response = portal.get(params, step="stream link creation")
    except StalkerPortalError as e:
        logger.debug(f"Could not resolve {cmd!r}: {e}")
        return ""

    js_data = json_response.get("js")
    stream_url = js_data.get("cmd") if isinstance(js_data, dict) else None
    if not stream_url or not isinstance(stream_url, str):
        logger.debug(f"Stream 'cmd' not found in create_link response for {cmd!r}.")
        return ""
    return stream_url


def resolve_all(
    portal: StalkerPortal,
    cmds: Sequence[str],
    kind: str,
    workers: int = 1,
    progress_callback: Optional[Callable[[int], None]] = None,
) -> List[str]:
    """
    Resolve a batch of commands, at most `workers` at a time.

    Results come back in the order of `cmds` no matter which call finishes
    first. A failed item yields "" and leaves its siblings alone.

    Parameters:
        portal (StalkerPortal): Authenticated portal client.
        cmds (Sequence[str]): Raw command strings.
        kind (str): "movies" or "series".
        workers (int): Concurrency bound; 1 resolves strictly one by one.
        progress_callback (Optional[Callable[[int], None]]): Called with 1 per resolved item.

    Returns:
        List[str]: Resolved URLs, "" where resolution failed.
    """
    if workers < 1:
        raise ValueError("workers must be a positive integer.")

    progress_lock = Lock()

    def resolve(cmd: str) -> str:
        stream_url = resolve_stream_link(portal, cmd, kind)
        if progress_callback:
            with progress_lock:
                progress_callback(1)
        return stream_url

    if workers == 1 or len(cmds) <= 1:
        return [resolve(cmd) for cmd in cmds]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(resolve, cmds))
