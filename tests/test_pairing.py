"""Tests for the session pairing daemon."""

import asyncio
import io
import tempfile
from pathlib import Path

import pytest

from ami.pairing import PairingAction, PairingListener, format_action, report_action


def test_format_action():
    action = PairingAction(task_id="t1", action="edited config.py", source="editor")
    assert format_action(action) == " [LOG] Tool: editor | Action: edited config.py"


def test_report_without_daemon_is_not_an_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert report_action(PairingAction(action="x"), Path(tmpdir) / "missing.sock") is False


class TestListener:
    @pytest.mark.asyncio
    async def test_start_stop(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sock_path = Path(tmpdir) / "pairing.sock"
            listener = PairingListener(sock_path)
            await listener.start()
            assert sock_path.exists()
            await listener.stop()
            assert not sock_path.exists()

    @pytest.mark.asyncio
    async def test_receives_actions_from_multiple_clients(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sock_path = Path(tmpdir) / "pairing.sock"
            received = []
            listener = PairingListener(sock_path, task_id="t1", on_action=received.append)
            await listener.start()
            try:
                for source in ("agent-a", "agent-b"):
                    _, writer = await asyncio.open_unix_connection(str(sock_path))
                    action = PairingAction(task_id="t1", action="ran tests", source=source)
                    writer.write(action.model_dump_json().encode())
                    writer.write(b"\n{not json}\n")
                    writer.write(b'{"task_id": "t1", "action": "second", "source": "%s"}\n' % source.encode())
                    await writer.drain()
                    writer.close()
                    await writer.wait_closed()

                for _ in range(50):
                    if len(received) == 4:
                        break
                    await asyncio.sleep(0.02)
            finally:
                await listener.stop()

            assert sorted((a.source, a.action) for a in received) == [
                ("agent-a", "ran tests"),
                ("agent-a", "second"),
                ("agent-b", "ran tests"),
                ("agent-b", "second"),
            ]

    @pytest.mark.asyncio
    async def test_default_handler_writes_log_lines(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sock_path = Path(tmpdir) / "pairing.sock"
            output = io.StringIO()
            listener = PairingListener(sock_path, output=output)
            await listener.start()
            try:
                delivered = await asyncio.to_thread(
                    report_action, PairingAction(action="opened file", source="cli"), sock_path
                )
                for _ in range(50):
                    if output.getvalue():
                        break
                    await asyncio.sleep(0.02)
            finally:
                await listener.stop()

            assert delivered is True
            assert output.getvalue() == " [LOG] Tool: cli | Action: opened file\n"
