"""Session pairing over a Unix domain socket.

A long-running listener collects tool actions reported by agents working on
a task. Reporters send one JSON object per line:

    {"task_id": "...", "action": "...", "source": "..."}

Each connection gets its own handler; all actions go to one shared output.
"""

import asyncio
import json
import logging
import socket
import sys
from pathlib import Path
from typing import Callable, Optional, TextIO

from pydantic import BaseModel, ValidationError

from ami.config import DEFAULT_PAIRING_SOCKET

logger = logging.getLogger(__name__)


class PairingAction(BaseModel):
    """One reported tool action."""

    task_id: str = ""
    action: str = ""
    source: str = ""


def format_action(action: PairingAction) -> str:
    return f" [LOG] Tool: {action.source} | Action: {action.action}"


class PairingListener:
    """Pairing daemon listening on a Unix domain socket.

    Args:
        socket_path: Path for the UDS listener
        task_id: Task the session is associated with
        on_action: Called for every decoded action; by default the action is
            written to ``output``
        output: Shared stream for action log lines
    """

    def __init__(
        self,
        socket_path: Path = Path(DEFAULT_PAIRING_SOCKET),
        task_id: str = "default",
        on_action: Optional[Callable[[PairingAction], None]] = None,
        output: Optional[TextIO] = None,
    ):
        self.socket_path = Path(socket_path)
        self.task_id = task_id
        self.output = output or sys.stdout
        self.on_action = on_action or self._log_action
        self._server: Optional[asyncio.AbstractServer] = None

    def _log_action(self, action: PairingAction) -> None:
        self.output.write(format_action(action) + "\n")
        self.output.flush()

    async def start(self):
        """Start listening on the Unix domain socket."""
        # Remove stale socket file
        self.socket_path.unlink(missing_ok=True)
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        self._server = await asyncio.start_unix_server(self._handle_client, path=str(self.socket_path))
        logger.info("Pairing daemon listening on %s (task: %s)", self.socket_path, self.task_id)

    async def stop(self):
        """Stop the listener and clean up."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self.socket_path.unlink(missing_ok=True)

    async def serve_forever(self):
        """Run until cancelled."""
        if self._server is None:
            await self.start()
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Decode newline-delimited actions until the reporter disconnects."""
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    action = PairingAction.model_validate(json.loads(text))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.debug("Ignoring malformed pairing message: %s", e)
                    continue
                self.on_action(action)
        except ConnectionError as e:
            logger.debug("Pairing client error: %s", e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass


def report_action(
    action: PairingAction,
    socket_path: Path = Path(DEFAULT_PAIRING_SOCKET),
    timeout: float = 2.0,
) -> bool:
    """Send one action to a running pairing daemon.

    Returns:
        True if delivered, False if no daemon is listening (not an error)
    """
    payload = (action.model_dump_json() + "\n").encode("utf-8")
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            sock.connect(str(socket_path))
            sock.sendall(payload)
    except (FileNotFoundError, ConnectionRefusedError, socket.timeout):
        logger.debug("No pairing daemon at %s", socket_path)
        return False
    except OSError as e:
        logger.debug("Pairing report failed: %s", e)
        return False
    return True
