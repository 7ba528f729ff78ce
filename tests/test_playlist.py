import pytest

from normalizer import Channel, VodItem
from playlist import clean_stream_url, extinf_line, serialize, write_playlist


@pytest.mark.parametrize("url, expected", [
    ("ffmpeg http://x/1", "http://x/1"),
    ("ffrt http://x/2", "http://x/2"),
    ("ffrt2k http://x/3", "http://x/3"),
    ("ffmpeg rtmp://x/4", "rtmp://x/4"),
    ("ffmpeg ffmpeg http://x/5", "ffmpeg http://x/5"),
    ("http://x/6", "http://x/6"),
    ("https://x/7", "https://x/7"),
    ("rtsp://x/8", "rtsp://x/8"),
    ("ffmpeghttp://x/9", "ffmpeghttp://x/9"),
    ("", ""),
])
def test_clean_stream_url_strips_one_engine_token(url, expected):
    assert clean_stream_url(url) == expected


def test_extinf_attribute_order_and_omission():
    full = VodItem(id="9", name="Heat", cmd="http://x", poster="http://p/9.jpg", group="Movies")
    assert extinf_line(full) == '#EXTINF:-1 tvg-id="9" tvg-logo="http://p/9.jpg" group-title="Movies",Heat'

    bare = VodItem(id="", name="Nameless", cmd="http://x")
    assert extinf_line(bare) == "#EXTINF:-1,Nameless"


def test_serialize_orders_sections_and_pairs_lines():
    channels = [Channel(id="1", name="News", cmd="ffmpeg http://x/1", logo="http://l/1.png")]
    movies = [
        VodItem(id="m1", name="Heat", cmd="http://v/m1", group="Movies"),
        VodItem(id="m2", name="Ronin", cmd="http://v/m2", group="Movies"),
    ]
    series = [VodItem(id="s1", name="Pilot", cmd="ffrt http://v/s1", group="Series – Drama")]

    text = serialize(channels, movies, series)

    assert text == (
        "#EXTM3U\n"
        '#EXTINF:-1 tvg-id="1" tvg-logo="http://l/1.png" group-title="Live TV",News\n'
        "http://x/1\n"
        '#EXTINF:-1 tvg-id="m1" group-title="Movies",Heat\n'
        "http://v/m1\n"
        '#EXTINF:-1 tvg-id="m2" group-title="Movies",Ronin\n'
        "http://v/m2\n"
        '#EXTINF:-1 tvg-id="s1" group-title="Series – Drama",Pilot\n'
        "http://v/s1\n"
    )


@pytest.mark.parametrize("n_channels, n_movies, n_series", [(0, 0, 0), (3, 0, 1), (2, 5, 4)])
def test_every_extinf_line_is_followed_by_one_url(n_channels, n_movies, n_series):
    channels = [Channel(id=str(i), name=f"C{i}", cmd=f"http://c/{i}") for i in range(n_channels)]
    movies = [VodItem(id=str(i), name=f"M{i}", cmd=f"http://m/{i}") for i in range(n_movies)]
    series = [VodItem(id=str(i), name=f"S{i}", cmd=f"http://s/{i}") for i in range(n_series)]

    lines = serialize(channels, movies, series).splitlines()

    assert lines[0] == "#EXTM3U"
    body = lines[1:]
    assert len(body) == 2 * (n_channels + n_movies + n_series)
    assert sum(line.startswith("#EXTINF") for line in body) == n_channels + n_movies + n_series
    for extinf, url in zip(body[::2], body[1::2]):
        assert extinf.startswith("#EXTINF:-1")
        assert not url.startswith("#")


def test_write_playlist_is_utf8(tmp_path):
    path = tmp_path / "out.m3u"
    text = serialize([], [VodItem(id="1", name="Amélie", cmd="http://v/1", group="Movies – Français")], [])
    write_playlist(str(path), text)
    assert path.read_bytes().decode("utf-8") == text
