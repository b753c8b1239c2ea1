# main.py
import asyncio
import sys

from arby.config import DEFAULT_CONFIG_PATH, config_source
from arby.orchestrator import start_arby
from arby.shutdown import install_shutdown


async def main(config_path: str):
    shutdown = install_shutdown()
    await start_arby(config_source(config_path), shutdown)


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CONFIG_PATH
    try:
        import uvloop
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except ImportError:
        pass
    try:
        asyncio.run(main(path))
    except Exception as error:
        if str(error):
            print(f"Error: {error}")
        else:
            print(repr(error))
        sys.exit(1)
    print("Shutdown complete. Goodbye, Arby.")
