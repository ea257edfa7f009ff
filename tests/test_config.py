import pytest

from ytm_rpc.backoff import (
    AGENT_RETRY_BASE,
    AGENT_RETRY_MAX,
    BRIDGE_RETRY_BASE,
    BRIDGE_RETRY_MAX,
    linear_backoff,
)
from ytm_rpc.config import ConfigError, load_agent_config, load_bridge_config


def test_bridge_requires_client_id():
    with pytest.raises(ConfigError, match="DISCORD_CLIENT_ID"):
        load_bridge_config({})

    with pytest.raises(ConfigError):
        load_bridge_config({"DISCORD_CLIENT_ID": "   "})


def test_bridge_defaults():
    config = load_bridge_config({"DISCORD_CLIENT_ID": "1234"})

    assert config.client_id == "1234"
    assert config.host == "localhost"
    assert config.port == 8080
    assert config.show_status_glyph is False


def test_bridge_accepts_client_id_alias_and_overrides():
    config = load_bridge_config({
        "CLIENT_ID": "999",
        "BRIDGE_HOST": "127.0.0.1",
        "BRIDGE_PORT": "9001",
        "SHOW_STATUS_GLYPH": "yes",
    })

    assert config.client_id == "999"
    assert config.host == "127.0.0.1"
    assert config.port == 9001
    assert config.show_status_glyph is True


@pytest.mark.parametrize("port", ["abc", "0", "70000"])
def test_bad_port_is_config_error(port):
    with pytest.raises(ConfigError, match="BRIDGE_PORT"):
        load_bridge_config({"DISCORD_CLIENT_ID": "1", "BRIDGE_PORT": port})


def test_agent_defaults_and_overrides():
    assert load_agent_config({}).bridge_url == "ws://localhost:8080"

    config = load_agent_config({"BRIDGE_URL": "ws://127.0.0.1:9000", "CDP_PORT": "9333"})
    assert config.bridge_url == "ws://127.0.0.1:9000"
    assert config.cdp_port == 9333
    assert config.player_url_match == "music.youtube.com"


def test_bridge_backoff_sequence():
    delays = [linear_backoff(n, BRIDGE_RETRY_BASE, BRIDGE_RETRY_MAX) for n in range(1, 15)]
    assert delays[:4] == [5.0, 10.0, 15.0, 20.0]
    assert delays[11:] == [60.0, 60.0, 60.0]


def test_agent_backoff_sequence():
    delays = [linear_backoff(n, AGENT_RETRY_BASE, AGENT_RETRY_MAX) for n in range(1, 9)]
    assert delays == [5.0, 10.0, 15.0, 20.0, 25.0, 30.0, 30.0, 30.0]
