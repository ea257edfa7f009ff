# ytm_rpc/models.py
import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class MessageError(ValueError):
    """Inbound message could not be turned into a snapshot."""


class RepeatMode(str, Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"

    @classmethod
    def parse(cls, value) -> "RepeatMode":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OFF


@dataclass(frozen=True)
class PlaybackSnapshot:
    title: str
    artist: str
    album: Optional[str] = None
    thumbnail: Optional[str] = None
    playing: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF
    current_time: Optional[int] = None  # seconds
    duration: Optional[int] = None  # seconds
    capture_timestamp: Optional[int] = None  # epoch ms
    timestamp: Optional[int] = None  # epoch ms

    def watched(self) -> Tuple:
        return (self.title, self.playing, self.repeat_mode)

    def to_message(self) -> dict:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "thumbnail": self.thumbnail,
            "isPlaying": self.playing,
            "repeatMode": self.repeat_mode.value,
            "duration": self.duration,
            "currentTime": self.current_time,
            "captureTimestamp": self.capture_timestamp,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_message(cls, data) -> "PlaybackSnapshot":
        if not isinstance(data, dict):
            raise MessageError(f"expected an object, got {type(data).__name__}")

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise MessageError("missing title")

        capture = _number(data, "captureTimestamp")
        timestamp = _number(data, "timestamp")

        return cls(
            title=title.strip(),
            artist=_text(data, "artist") or "",
            album=_text(data, "album"),
            thumbnail=_text(data, "thumbnail"),
            playing=data.get("isPlaying") is True,
            repeat_mode=RepeatMode.parse(data.get("repeatMode", "off")),
            current_time=_number(data, "currentTime"),
            duration=_number(data, "duration"),
            capture_timestamp=capture if capture is not None else timestamp,
            timestamp=timestamp,
        )

    @classmethod
    def from_json(cls, raw) -> "PlaybackSnapshot":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MessageError(f"invalid JSON: {e}") from e
        return cls.from_message(data)


def _text(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MessageError(f"{key} must be a string")
    return value.strip() or None


def _number(data: dict, key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MessageError(f"{key} must be a number")
    try:
        return int(value)
    except (ValueError, OverflowError) as e:  # NaN / Infinity
        raise MessageError(f"{key} must be finite") from e
