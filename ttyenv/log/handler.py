import os
import sys
import socket
import logging
import threading
import requests
from collections import deque
from typing import Any, Deque, Dict, Optional
from ttyenv.local.config import effective_settings as config


class LokiHandler(logging.Handler):
    """
    Ships log records to a Grafana Loki instance in batches from a background thread.
    Child process output (the `proc.<name>` loggers) is labelled with the process name.
    """
    def __init__(self, url: str, org_id: Optional[str] = None, start_thread: bool = True):
        """
        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki (sent as 'X-Scope-OrgID').
        :param start_thread: Start the periodic flush thread.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.flush_interval = config.LOG_BUFFER_FLUSH_INTERVAL
        self.batch_size = config.LOG_BUFFER_SIZE
        self.hostname = os.getenv('HOSTNAME') or socket.gethostname()

        self.stop_event = threading.Event()
        self.flush_thread: Optional[threading.Thread] = None
        if start_thread:
            self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name="LokiFlushThread")
            self.flush_thread.start()

    def _periodic_flush(self) -> None:
        """Periodically flushes the log buffer until the handler is closed."""
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def build_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        """Converts a record into a Loki stream entry."""
        if record.name.startswith('proc.'):
            msg = record.getMessage()
            logger_name = record.name.split('.', 1)[-1]
            job = "ttyenv-process"
        else:
            msg = self.format(record)
            logger_name = record.name
            job = "ttyenv"

        return {
            "stream": {
                "job": job,
                "level": record.levelname.lower(),
                "hostname": self.hostname,
                "logger": logger_name,
            },
            "values": [
                [str(int(record.created * 1e9)), msg]
            ]
        }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            log_entry = self.build_entry(record)
            with self.buffer_lock:
                self.log_buffer.append(log_entry)
                full = len(self.log_buffer) >= self.batch_size
            if full:
                self.flush()
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        """Sends the buffered entries to Loki. Network errors are reported on stderr."""
        with self.buffer_lock:
            if not self.log_buffer:
                return
            logs_to_send = list(self.log_buffer)
            self.log_buffer.clear()

        headers = {'Content-Type': 'application/json'}
        if self.org_id:
            headers['X-Scope-OrgID'] = self.org_id
        try:
            response = requests.post(self.url, json={"streams": logs_to_send}, headers=headers, timeout=5)
            # 204 No Content is the success status for Loki push
            if response.status_code != 204:
                print(f"ERROR: Loki returned non-204 status: {response.status_code} - {response.text}", file=sys.stderr)
        except requests.RequestException as e:
            print(f"CRITICAL: Failed to send {len(logs_to_send)} logs to Loki: {e}", file=sys.stderr)

    def close(self) -> None:
        """Stops the flush thread and sends whatever is left."""
        self.stop_event.set()
        if self.flush_thread is not None and self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        else:
            self.flush()
        super().close()
