# arby/context.py
import asyncio
from dataclasses import dataclass
from typing import Any

from .config import Config
from .logger import Loggers


@dataclass
class RunContext:
    """
    Everything one run of the agent shares between its phases.
    The CEX session is owned by the run and only used by one phase at a time.
    """
    config: Config
    loggers: Loggers
    cex: Any  # ccxt.async_support.Exchange
    shutdown: asyncio.Event
