import time
import psutil
import socket
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the locker."""
    allow_reuse_address = True
    pass


class Monitor:
    def __init__(self, locker=None, host="127.0.0.1", port=9090, serve=True):
        self.locker = locker
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry per locker instance
        self.registry = CollectorRegistry()

        self.op_counter = Counter('locker_operations_total', 'Locker operations by outcome', ['operation', 'status'], registry=self.registry)
        self.op_latency = Histogram('locker_operation_latency_seconds', 'Time to run a locker operation', ['operation'], registry=self.registry)
        self.total_locked = Gauge('locker_total_locked_liquidity', 'Liquidity locked so far', registry=self.registry)
        self.total_issued = Gauge('locker_total_reward_issued', 'Reward tokens paid out', registry=self.registry)
        self.total_deposited = Gauge('locker_total_reward_deposited', 'Reward tokens deposited into the vault', registry=self.registry)
        self.available = Gauge('locker_available_rewards', 'Deposited rewards not yet issued', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

        if serve:
            self.start_server()

    def start_server(self):
        """Creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        max_retries = 5
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self):
        if self.locker is not None and self.locker.is_initialized():
            self.set_totals(*self.locker.get_pool_info())

        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def set_totals(self, locked: int, issued: int, deposited: int, available: int):
        self.total_locked.set(locked)
        self.total_issued.set(issued)
        self.total_deposited.set(deposited)
        self.available.set(available)

    def record_operation(self, operation: str, status: str, latency: float):
        self.op_counter.labels(operation=operation, status=status).inc()
        self.op_latency.labels(operation=operation).observe(latency)
