#main.py
import asyncio
import signal
import sys

from ytm_rpc.bridge import PresenceBridge
from ytm_rpc.config import BridgeConfig, ConfigError, load_bridge_config
from ytm_rpc.debug import log


def install_signal_handlers(stop: asyncio.Event):
    # Windows has no loop signal handlers; Ctrl+C arrives as KeyboardInterrupt
    if sys.platform == "win32":
        return
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)


async def serve(config: BridgeConfig):
    stop = asyncio.Event()
    install_signal_handlers(stop)
    await PresenceBridge(config).run(stop)


def main():
    try:
        config = load_bridge_config()
    except ConfigError as e:
        log("Bridge", f"ERROR: {e}")
        sys.exit(1)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        pass
    except OSError as e:
        log("Bridge", f"ERROR: could not listen on {config.host}:{config.port}: {e}")
        sys.exit(1)

    log("Bridge", "Stopped")


if __name__ == "__main__":
    main()
