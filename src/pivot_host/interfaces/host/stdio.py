"""Line-delimited JSON host on stdin/stdout.

Each input line is one request; each reply is written as one line. Logs go
to stderr because stdout carries the protocol.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Callable, Dict, Optional, TextIO

from pivot_host.interfaces.host.host import Host

logger = logging.getLogger(__name__)


class StdioHost(Host):
    def __init__(
        self,
        engine_factory: Optional[Callable[[Any], Any]] = None,
        output: Optional[TextIO] = None,
    ) -> None:
        super().__init__(engine_factory)
        self._output = output or sys.stdout

    def post(self, message: Dict[str, Any]) -> None:
        self._output.write(json.dumps(message, default=str) + "\n")
        self._output.flush()

    def process_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON request: %s", e)
            self.post({"id": None, "error": {"name": "JSONDecodeError", "message": str(e)}})
            return
        self.process(message)


async def serve_stdio(
    engine_factory: Optional[Callable[[Any], Any]] = None,
    stream: Optional[TextIO] = None,
    output: Optional[TextIO] = None,
) -> None:
    """Serve requests from ``stream`` (stdin) until end of input."""
    host = StdioHost(engine_factory, output)
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    logger.info("Serving pivot-host protocol on stdio")
    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            break
        host.process_line(line)
    pending = [task for task in host._tasks if not task.done()]
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
    logger.info("Input closed; host stopped")

