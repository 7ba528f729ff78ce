import logging
import re
from typing import Iterable, Union

from normalizer import Channel, VodItem

logger = logging.getLogger(__name__)

M3U_HEADER = "#EXTM3U"

# Legacy streaming-engine tokens some portals put in front of the URL
ENGINE_PREFIX_REGEX = re.compile(r"^(ffmpeg|ffrt|ffrt2k) ")


def clean_stream_url(url: str) -> str:
    """
    Strip a leading "ffmpeg ", "ffrt " or "ffrt2k " token from a URL that
    does not already start with http.
    """
    if url and not url.startswith("http"):
        return ENGINE_PREFIX_REGEX.sub("", url, count=1)
    return url


def extinf_line(entry: Union[Channel, VodItem]) -> str:
    tvg_id = f' tvg-id="{entry.id}"' if entry.id else ""
    tvg_logo = f' tvg-logo="{entry.artwork}"' if entry.artwork else ""
    group_title = f' group-title="{entry.group}"' if entry.group else ""
    return f"#EXTINF:-1{tvg_id}{tvg_logo}{group_title},{entry.name}"


def serialize(
    channels: Iterable[Channel],
    movies: Iterable[VodItem],
    series: Iterable[VodItem],
) -> str:
    """
    Render entities as M3U text: live channels first, then movies, then
    series episodes, each as an #EXTINF line followed by its stream URL.
    """
    lines = [M3U_HEADER]
    for section in (channels, movies, series):
        for entry in section:
            lines.append(extinf_line(entry))
            lines.append(clean_stream_url(entry.cmd))
    return "\n".join(lines) + "\n"


def write_playlist(path: str, m3u_content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(m3u_content)
    logger.info(f"Playlist written to {path}")
