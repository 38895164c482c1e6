"""STDIO transport for MCP communication.

Reads newline-delimited JSON-RPC messages from an input byte stream and
writes them to an output byte stream. By default these are the process's
stdin and stdout; logging must go to stderr so it never corrupts the
protocol stream.
"""
import asyncio
import logging
import sys
from typing import Any, BinaryIO, Dict, Optional

from ..utils.errors import DeliveryError, TransportError, TransportFrameError
from .base import Transport
from .framing import LineFramer, Serializer, decode_frame, default_serializer, encode_frame

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 64 * 1024


class StdioTransport(Transport):
    """Byte-stream transport with one JSON document per line.

    Each chunk read is fully split and every complete frame in it is
    delivered to the listeners before the next chunk is read. A frame that
    fails to parse is reported through ``on_error`` and the following frames
    are still processed.
    """

    def __init__(
        self,
        reader: Optional[asyncio.StreamReader] = None,
        writer: Optional[asyncio.StreamWriter] = None,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        serializer: Serializer = default_serializer,
        read_size: int = DEFAULT_READ_SIZE,
    ):
        """Initialize the transport.

        Args:
            reader: Stream to read frames from (defaults to stdin)
            writer: Stream to write frames to (defaults to stdout)
            stdin: Pipe used when no reader is given (defaults to sys.stdin)
            stdout: Pipe used when no writer is given (defaults to sys.stdout)
            serializer: Turns a message into JSON text
            read_size: Maximum bytes per read
        """
        super().__init__()
        self._reader = reader
        self._writer = writer
        self._stdin = stdin
        self._stdout = stdout
        self._serializer = serializer
        self._read_size = read_size
        self._framer = LineFramer()
        self._read_task: Optional[asyncio.Task] = None
        self._input_closed: Optional[asyncio.Event] = None

    @classmethod
    def from_process(cls, process: asyncio.subprocess.Process, **kwargs) -> "StdioTransport":
        """Talk to a child process over its stdout/stdin pipes."""
        return cls(reader=process.stdout, writer=process.stdin, **kwargs)

    async def _connect_stdio(self):
        loop = asyncio.get_running_loop()

        if self._reader is None:
            self._reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(self._reader)
            await loop.connect_read_pipe(lambda: protocol, self._stdin or sys.stdin)

        if self._writer is None:
            transport, proto = await loop.connect_write_pipe(
                asyncio.streams.FlowControlMixin,
                self._stdout or sys.stdout,
            )
            self._writer = asyncio.StreamWriter(transport, proto, None, loop)

    async def _start(self):
        try:
            await self._connect_stdio()
        except (OSError, ValueError) as e:
            raise TransportError(f"Failed to attach to stdio: {e}")
        self._input_closed = asyncio.Event()
        self._read_task = asyncio.create_task(self._read_loop())
        logger.info("StdioTransport: Started listening for messages")

    async def _close(self):
        if self._read_task and self._read_task is not asyncio.current_task():
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
        self._read_task = None
        if self._input_closed is not None:
            self._input_closed.set()

        if self._writer is not None and not self._writer.is_closing():
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except (OSError, RuntimeError) as e:
                logger.debug(f"StdioTransport: Error while closing writer: {e}")
        logger.info("StdioTransport: Closed")

    async def send(self, message: Dict[str, Any], session_id: Optional[str] = None) -> None:
        """Write one message as a single line.

        The frame is validated before anything is written. When the output
        buffer is above its high-water mark this waits for the drain signal.

        Raises:
            FrameIntegrityError: If the serialized message contains a newline
            DeliveryError: If the output stream is gone
        """
        frame = encode_frame(message, self._serializer)

        if self._writer is None or self._closed or self._writer.is_closing():
            raise DeliveryError("Cannot send message: transport not connected")

        try:
            self._writer.write(frame)
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise DeliveryError(f"Failed to send message: {e}")

    async def _read_loop(self):
        try:
            while True:
                chunk = await self._reader.read(self._read_size)
                if not chunk:
                    break
                await self.process_chunk(chunk)
        except asyncio.CancelledError:
            raise
        except (ConnectionError, OSError) as e:
            logger.error(f"StdioTransport: Error reading input: {e}")
            await self._emit_error(e)

        rest = self._framer.reset()
        if rest.strip():
            logger.warning(f"StdioTransport: Discarding {len(rest)} bytes of incomplete frame at EOF")
        # Only the input is done, the output stays open until close()
        logger.info("StdioTransport: EOF received")
        self._input_closed.set()

    async def wait_input_closed(self):
        """Wait until the input stream reached EOF or the transport closed."""
        if not self._started:
            raise TransportError("StdioTransport not started")
        await self._input_closed.wait()

    async def process_chunk(self, chunk: bytes):
        """Frame a chunk of input and deliver every complete message in it."""
        for line in self._framer.feed(chunk):
            try:
                message = decode_frame(line)
            except TransportFrameError as e:
                logger.warning(f"StdioTransport: {e}")
                await self._emit_error(e)
                continue
            await self._emit_message(message)
