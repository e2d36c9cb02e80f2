"""Logging setup: readable stderr output plus optional delivery to Supabase.

Log lines use a `[TAG] message` convention (STARTUP, FLOW, LINE, IDENTITY,
AUTH, TOKEN, ...). The tag is parsed once by TagFilter and then used by both
formatters: stderr shows it inline, Supabase rows get it as a column.

Expected table:

    create table logs (
      id bigserial primary key,
      created_at timestamptz default now(),
      server_name text,
      level text,
      tag text,
      message text,
      logger text,
      extra jsonb
    );
"""

import atexit
import logging
import re
import sys
import threading
from collections import deque
from typing import Optional

TAG_PATTERN = re.compile(r"\[([A-Z_]+)\]\s*(.*)", re.DOTALL)
NOISY_LOGGERS = ("httpx", "httpcore", "hpack")


def split_tag(message: str) -> tuple[Optional[str], str]:
    match = TAG_PATTERN.match(message)
    if match is None:
        return None, message
    return match.group(1), match.group(2)


class TagFilter(logging.Filter):
    """Sets record.tag and record.body from the `[TAG] message` prefix."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tag, record.body = split_tag(record.getMessage())
        return True


class JSONFormatter(logging.Formatter):
    """Turns a record into a row for the logs table."""

    def __init__(self, server_name: str = None):
        super().__init__()
        self.server_name = server_name or "unknown"

    def format(self, record: logging.LogRecord) -> dict:
        if not hasattr(record, "tag"):
            TagFilter().filter(record)

        extra = {"function": record.funcName, "line": record.lineno}
        if record.exc_info:
            extra["exception"] = self.formatException(record.exc_info)

        return {
            "server_name": self.server_name,
            "level": record.levelname,
            "tag": record.tag,
            "message": record.body,
            "logger": record.name,
            "extra": extra,
        }


class PlainFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(fmt="%(asctime)s %(levelname)-7s %(name)s %(message)s", datefmt="%H:%M:%S")


class SupabaseHandler(logging.Handler):
    """Buffers rows and inserts them into Supabase in batches.

    A background thread sends whatever is buffered every flush_interval
    seconds; a full batch is sent right away from the logging call.
    """

    def __init__(
        self,
        supabase_client,
        server_name: str,
        batch_size: int = 20,
        flush_interval: float = 10.0,
        table: str = "logs",
    ):
        super().__init__()
        self.supabase = supabase_client
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.table = table
        self.setFormatter(JSONFormatter(server_name))

        self._pending: deque = deque()
        self._stopped = threading.Event()
        threading.Thread(target=self._run, name="supabase-logs", daemon=True).start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            self._pending.append(self.formatter.format(record))
        except Exception:
            self.handleError(record)
            return
        if len(self._pending) >= self.batch_size:
            self.flush()

    def _run(self):
        while not self._stopped.wait(self.flush_interval):
            self.flush()

    def _take_batch(self) -> list[dict]:
        rows = []
        while self._pending and len(rows) < self.batch_size * 2:
            rows.append(self._pending.popleft())
        return rows

    def flush(self):
        rows = self._take_batch()
        if not rows:
            return
        try:
            self.supabase.table(self.table).insert(rows).execute()
        except Exception as e:
            # Not through logging, which would feed this handler again
            print(f"[WARNING] Failed to send logs to Supabase: {e}", file=sys.stderr)

    def close(self):
        if not self._stopped.is_set():
            self._stopped.set()
            self.flush()
        super().close()


_remote_handler: Optional[SupabaseHandler] = None


def setup_logging(
    server_name: str = None,
    supabase_client=None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Replace the root logger's handlers.

    Args:
        server_name: Stored with every Supabase row.
        supabase_client: Enables remote delivery when given.
        level: Root log level.

    Returns:
        The root logger.
    """
    global _remote_handler

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.addFilter(TagFilter())
    console.setFormatter(PlainFormatter())
    root.addHandler(console)

    _remote_handler = None
    if supabase_client is not None:
        try:
            _remote_handler = SupabaseHandler(supabase_client, server_name=server_name or "unknown")
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)
        else:
            _remote_handler.addFilter(TagFilter())
            root.addHandler(_remote_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    target = "Supabase and stderr" if _remote_handler else "stderr only"
    logging.getLogger(__name__).info(f"[STARTUP] Logging to {target} ({server_name})")
    return root
