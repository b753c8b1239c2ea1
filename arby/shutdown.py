# arby/shutdown.py
import asyncio
import signal

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown(loop: asyncio.AbstractEventLoop = None) -> asyncio.Event:
    """
    Returns an event set once by SIGINT or SIGTERM. Must be called inside the running loop.
    """
    loop = loop or asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, shutdown.set)
    return shutdown
