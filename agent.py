#agent.py
import sys

from ytm_rpc.cdp_reader import CdpPageReader
from ytm_rpc.config import ConfigError, load_agent_config
from ytm_rpc.debug import log
from ytm_rpc.page_agent import PageAgent


def main():
    try:
        config = load_agent_config()
    except ConfigError as e:
        log("Agent", f"ERROR: {e}")
        sys.exit(1)

    reader = CdpPageReader(port=config.cdp_port, url_match=config.player_url_match)
    agent = PageAgent(reader, config.bridge_url)

    log("Agent", f"Watching {config.player_url_match} via DevTools port {config.cdp_port} (Ctrl+C to stop)")
    try:
        agent.run()
    except KeyboardInterrupt:
        log("Agent", "Stopped")


if __name__ == "__main__":
    main()
