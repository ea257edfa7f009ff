# ytm_rpc/config.py
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


class ConfigError(ValueError):
    pass


DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080
DEFAULT_BRIDGE_URL = f"ws://localhost:{DEFAULT_PORT}"
DEFAULT_CDP_PORT = 9222
DEFAULT_PLAYER_URL_MATCH = "music.youtube.com"


@dataclass(frozen=True)
class BridgeConfig:
    client_id: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    show_status_glyph: bool = False


@dataclass(frozen=True)
class AgentConfig:
    bridge_url: str = DEFAULT_BRIDGE_URL
    cdp_port: int = DEFAULT_CDP_PORT
    player_url_match: str = DEFAULT_PLAYER_URL_MATCH


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    v = env.get(name)
    return v.strip() if v is not None and v.strip() != "" else None


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if not 0 < value < 65536:
        raise ConfigError(f"{name} must be a port number, got {value}")
    return value


def _get_flag(env: Mapping[str, str], name: str) -> bool:
    return (_get(env, name) or "").lower() in {"1", "true", "yes", "on"}


def load_bridge_config(env: Optional[Mapping[str, str]] = None) -> BridgeConfig:
    """
    Reads the bridge settings. DISCORD_CLIENT_ID (or CLIENT_ID) is required;
    a .env file in the working directory is honoured when env is not given.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    client_id = _get(env, "DISCORD_CLIENT_ID") or _get(env, "CLIENT_ID")
    if not client_id:
        raise ConfigError(
            "DISCORD_CLIENT_ID is not set. Create an application at "
            "https://discord.com/developers/applications and add "
            "DISCORD_CLIENT_ID=your_app_id to the environment or a .env file."
        )

    return BridgeConfig(
        client_id=client_id,
        host=_get(env, "BRIDGE_HOST") or DEFAULT_HOST,
        port=_get_int(env, "BRIDGE_PORT", DEFAULT_PORT),
        show_status_glyph=_get_flag(env, "SHOW_STATUS_GLYPH"),
    )


def load_agent_config(env: Optional[Mapping[str, str]] = None) -> AgentConfig:
    if env is None:
        load_dotenv()
        env = os.environ

    return AgentConfig(
        bridge_url=_get(env, "BRIDGE_URL") or DEFAULT_BRIDGE_URL,
        cdp_port=_get_int(env, "CDP_PORT", DEFAULT_CDP_PORT),
        player_url_match=_get(env, "PLAYER_URL_MATCH") or DEFAULT_PLAYER_URL_MATCH,
    )
