"""LogTailer: watchdog event handler that streams new lines from a growing log file."""

import logging
import os
import queue
import threading
import time

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024
SIGNATURE_SIZE = 64

_CLOSED = object()


class TailError(Exception):
    """The followed file is gone or unreadable; the stream cannot continue."""


class LogTailer(FileSystemEventHandler):
    """Reads appended bytes from one file and enqueues (line, byte_offset) pairs.

    Handles:
    - Partial writes (unterminated data is held back until its newline arrives)
    - Log rotation (device/inode change detection)
    - File truncation (size below the read offset, or rewritten bytes before it)
    - Removal with no replacement (TailError after rotate_grace seconds)
    """

    def __init__(self, path: str, q: queue.Queue, rotate_grace: float = 5.0):
        super().__init__()
        self._path = os.path.abspath(path)
        self._queue = q
        self._rotate_grace = rotate_grace
        self._lock = threading.Lock()
        self._file = None
        self._identity: tuple[int, int] | None = None
        self._offset = 0
        self._partial = b""
        self._signature = b""
        self._missing_since: float | None = None
        self._failed = False

    @property
    def path(self) -> str:
        return self._path

    def open(self):
        """Open the file at its beginning. Raises TailError if it cannot be read."""
        with self._lock:
            try:
                self._open_file()
            except OSError as exc:
                raise TailError(f"Cannot open {self._path}: {exc}") from exc

    def poll(self):
        """Check for rotation or truncation, then enqueue any new complete lines."""
        with self._lock:
            if self._file is None or self._failed:
                return
            try:
                self._poll()
            except OSError as exc:
                self._fail(f"Error reading {self._path}: {exc}")

    def close(self):
        with self._lock:
            self._close_file()

    # -- watchdog callbacks ---------------------------------------------------

    def on_modified(self, event):
        self._handle(event)

    def on_created(self, event):
        self._handle(event)

    def on_deleted(self, event):
        self._handle(event)

    def on_moved(self, event):
        self._handle(event)

    def _handle(self, event):
        if event.is_directory:
            return
        paths = {event.src_path, getattr(event, "dest_path", "")}
        if self._path in {os.path.abspath(p) for p in paths if p}:
            self.poll()

    # -- internals (caller holds self._lock) ----------------------------------

    def _open_file(self):
        fh = open(self._path, "rb")
        try:
            stat = os.fstat(fh.fileno())
        except OSError:
            fh.close()
            raise
        self._close_file()
        self._file = fh
        self._identity = (stat.st_dev, stat.st_ino)
        self._reset_position()
        logger.debug("Opened %s (inode=%d)", self._path, stat.st_ino)

    def _close_file(self):
        if self._file:
            self._file.close()
            self._file = None

    def _reset_position(self):
        self._file.seek(0)
        self._offset = 0
        self._partial = b""
        self._signature = b""

    def _poll(self):
        try:
            stat = os.stat(self._path)
        except FileNotFoundError:
            # Finish whatever the writer left in the unlinked file.
            self._read_new_lines()
            self._check_missing()
            return

        if self._missing_since is not None:
            logger.info("%s is back", self._path)
            self._missing_since = None

        if (stat.st_dev, stat.st_ino) != self._identity:
            logger.info("File rotation detected for %s", self._path)
            self._read_new_lines()
            try:
                self._open_file()
            except FileNotFoundError:
                # Removed again before it could be opened.
                self._check_missing()
                return
        elif stat.st_size < self._offset or self._rewritten():
            logger.info("File truncation detected for %s", self._path)
            self._reset_position()

        self._read_new_lines()

    def _rewritten(self) -> bool:
        """True if the bytes just before the read offset no longer match what was read."""
        if not self._signature:
            return False
        self._file.seek(self._offset - len(self._signature))
        current = self._file.read(len(self._signature))
        self._file.seek(self._offset)
        return current != self._signature

    def _read_new_lines(self):
        while True:
            chunk = self._file.read(READ_CHUNK)
            if not chunk:
                return
            self._offset += len(chunk)
            self._signature = (self._signature + chunk)[-SIGNATURE_SIZE:]

            data = self._partial + chunk
            start = self._offset - len(data)
            lines = data.split(b"\n")
            self._partial = lines.pop()

            for raw in lines:
                text = raw.rstrip(b"\r").decode("utf-8", errors="replace")
                self._queue.put((text, start))
                start += len(raw) + 1

    def _check_missing(self):
        now = time.monotonic()
        if self._missing_since is None:
            self._missing_since = now
            logger.warning("%s disappeared, waiting %.1fs for a replacement",
                           self._path, self._rotate_grace)
        elif now - self._missing_since >= self._rotate_grace:
            self._fail(f"{self._path} was removed and not replaced within {self._rotate_grace:.1f}s")

    def _fail(self, message: str):
        self._failed = True
        self._close_file()
        self._queue.put(TailError(message))


class LineStream:
    """Iterator of (line, byte_offset) pairs from a LogTailer.

    Lines arrive from the watchdog observer thread through a queue. Whenever
    the queue stays empty for poll_interval seconds the consumer polls the file
    itself, so a missed filesystem event only delays a line, never loses it.
    Iteration stops when the shutdown event is set or close() is called.
    """

    def __init__(
        self,
        tailer: LogTailer,
        q: queue.Queue,
        shutdown_event: threading.Event,
        poll_interval: float = 0.5,
        observer=None,
    ):
        self._tailer = tailer
        self._queue = q
        self._shutdown = shutdown_event
        self._poll_interval = poll_interval
        self._observer = observer
        self._error: TailError | None = None

    @property
    def path(self) -> str:
        return self._tailer.path

    @property
    def closed(self) -> bool:
        return self._shutdown.is_set()

    def next_line(self, timeout: float | None = None) -> tuple[str, int] | None:
        """Wait for the next complete line.

        Returns None if the timeout expires or the stream is closed. Raises
        TailError once the file is permanently gone.
        """
        if self._error is not None:
            raise self._error

        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._shutdown.is_set():
            wait = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                wait = min(wait, remaining)

            try:
                item = self._queue.get(timeout=wait)
            except queue.Empty:
                self._tailer.poll()
                continue

            if item is _CLOSED:
                break
            if isinstance(item, TailError):
                self._error = item
                raise item
            return item
        return None

    def close(self):
        """Stop the observer and release the file. Safe to call more than once."""
        self._shutdown.set()
        self._queue.put(_CLOSED)
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._tailer.close()

    def __iter__(self):
        return self

    def __next__(self) -> tuple[str, int]:
        item = self.next_line()
        if item is None:
            raise StopIteration
        return item

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def open_stream(
    path: str,
    shutdown_event: threading.Event | None = None,
    poll_interval: float = 0.5,
    rotate_grace: float = 5.0,
) -> LineStream:
    """Open path for following and return its line stream.

    The stream starts at the beginning of the file. Raises TailError if the
    file cannot be opened.
    """
    q: queue.Queue = queue.Queue()
    tailer = LogTailer(path, q, rotate_grace=rotate_grace)
    tailer.open()

    observer = Observer()
    try:
        observer.schedule(tailer, os.path.dirname(tailer.path), recursive=False)
        observer.start()
    except OSError as exc:
        logger.warning("Filesystem events unavailable for %s (%s), polling every %.1fs",
                       tailer.path, exc, poll_interval)
        observer = None

    stream = LineStream(
        tailer, q,
        shutdown_event if shutdown_event is not None else threading.Event(),
        poll_interval=poll_interval,
        observer=observer,
    )
    tailer.poll()
    return stream
