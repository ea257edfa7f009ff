# ytm_rpc/player_bar.py
import time
from typing import Optional, Tuple

from .models import PlaybackSnapshot, RepeatMode

UNKNOWN_ARTIST = "Unknown Artist"


def parse_time(text: Optional[str]) -> Optional[int]:
    """
    "3:45" -> 225, "1:02:03" -> 3723. Anything else -> None.
    """
    if not text:
        return None

    parts = text.strip().split(":")
    # isdecimal, not isdigit: "²" is a digit that int() rejects
    if not all(p.strip().isdecimal() for p in parts):
        return None
    nums = [int(p) for p in parts]

    if len(nums) == 2:
        return nums[0] * 60 + nums[1]
    if len(nums) == 3:
        return nums[0] * 3600 + nums[1] * 60 + nums[2]
    return None


def parse_time_info(text: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Splits the "current / total" label into (current, total) seconds."""
    if not text:
        return None, None

    times = [t.strip() for t in text.split("/")]
    if len(times) != 2:
        return None, None
    return parse_time(times[0]), parse_time(times[1])


def split_byline(byline: Optional[str]) -> Tuple[str, Optional[str]]:
    # "Artist • Album • 2021"
    byline = (byline or "").strip()
    if not byline:
        return UNKNOWN_ARTIST, None

    if "•" not in byline:
        return byline, None

    parts = [p.strip() for p in byline.split("•")]
    return parts[0] or UNKNOWN_ARTIST, parts[1] or None


def clean_thumbnail(src: Optional[str]) -> Optional[str]:
    src = (src or "").strip()
    if not src.startswith(("http://", "https://")):
        return None
    # drop the "=w60-h60-l90-rj" size suffix
    return src.split("=")[0]


def repeat_mode_from_label(label: Optional[str]) -> RepeatMode:
    # player-bar attribute is NONE / ALL / ONE, button title is "Repeat off" etc.
    label = (label or "").lower()
    if "none" in label or "off" in label:
        return RepeatMode.OFF
    if "one" in label:
        return RepeatMode.ONE
    if "all" in label:
        return RepeatMode.ALL
    return RepeatMode.OFF


def snapshot_from_player_bar(fields: Optional[dict], captured_at: Optional[int] = None) -> Optional[PlaybackSnapshot]:
    """
    Builds a snapshot from the raw player-bar text returned by the page script.
    Returns None when no song is loaded.
    """
    if not isinstance(fields, dict):
        return None

    title = (fields.get("title") or "").strip()
    if not title:
        return None

    if captured_at is None:
        captured_at = int(time.time() * 1000)

    artist, album = split_byline(fields.get("byline"))
    current, total = parse_time_info(fields.get("timeInfo"))

    return PlaybackSnapshot(
        title=title,
        artist=artist,
        album=album,
        thumbnail=clean_thumbnail(fields.get("thumbnail")),
        playing="pause" in (fields.get("playLabel") or "").lower(),
        repeat_mode=repeat_mode_from_label(fields.get("repeatLabel")),
        current_time=current,
        duration=total,
        capture_timestamp=captured_at,
        timestamp=captured_at,
    )
