"""
Status server - serves the latest published snapshot over HTTP

GET /      HTML status page
GET /json  JSON document of the snapshot
"""

import json
import html
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

from .nodes import Snapshot
from .scanner import SnapshotStore

logger = logging.getLogger(__name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Tox Bootstrap Node Status</title>
<style>
body {{ font-family: sans-serif; }}
table {{ border-collapse: collapse; }}
td, th {{ padding: 4px 8px; border-bottom: 1px solid #ddd; text-align: left; }}
tr.online td.status {{ color: #2a2; }}
tr.offline td.status {{ color: #c22; }}
</style>
</head>
<body>
<h1>Tox Bootstrap Node Status</h1>
<p>Last scan: {last_scan}</p>
<table>
<tr><th>IPv4</th><th>IPv6</th><th>Port</th><th>TCP Ports</th><th>Public Key</th><th>Maintainer</th><th>Location</th><th>Status</th><th>Version</th><th>MOTD</th><th>Last Ping</th></tr>
{rows}
</table>
</body>
</html>
"""

ROW_TEMPLATE = (
    '<tr class="{css}"><td>{ipv4}</td><td>{ipv6}</td><td>{port}</td><td>{tcp_ports}</td>'
    '<td><code>{public_key}</code></td><td>{maintainer}</td><td>{location}</td>'
    '<td class="status">{status}</td><td>{version}</td><td>{motd}</td><td>{last_ping}</td></tr>'
)


def render_status_page(snapshot: Snapshot) -> str:
    rows = []
    for node in snapshot.nodes:
        status = "Online" if node.status else "Offline"
        rows.append(ROW_TEMPLATE.format(
            css=status.lower(),
            ipv4=html.escape(node.ipv4),
            ipv6=html.escape(node.ipv6),
            port=node.port,
            tcp_ports=", ".join(str(port) for port in node.tcp_ports),
            public_key=html.escape(node.public_key),
            maintainer=html.escape(node.maintainer),
            location=html.escape(node.location),
            status=status,
            version=html.escape(node.version),
            motd=html.escape(node.motd),
            last_ping=html.escape(node.last_ping_string),
        ))
    return PAGE_TEMPLATE.format(last_scan=html.escape(snapshot.last_scan_string), rows="\n".join(rows))


def make_handler(store: SnapshotStore):
    """Build a request handler class bound to `store`."""

    class StatusHandler(BaseHTTPRequestHandler):
        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

        def _send(self, status: int, content_type: str, body: bytes):
            self.send_response(status)
            self.send_header('Content-Type', content_type)
            self.send_header('Content-Length', str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self):
            path = self.path.split('?', 1)[0]
            snapshot = store.current()

            if path == '/json':
                body = json.dumps(snapshot.to_dict()).encode('utf-8')
                self._send(200, 'application/json', body)
            elif path == '/':
                body = render_status_page(snapshot).encode('utf-8')
                self._send(200, 'text/html; charset=utf-8', body)
            else:
                self._send(404, 'text/plain; charset=utf-8', b'Not Found')

    return StatusHandler


class StatusServer:
    """Threaded HTTP server exposing a SnapshotStore"""

    def __init__(self, store: SnapshotStore, host: str = "0.0.0.0", port: int = 8081):
        self.store = store
        self.httpd = ThreadingHTTPServer((host, port), make_handler(store))
        self.httpd.daemon_threads = True
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self):
        return self.httpd.server_address

    def serve_forever(self):
        host, port = self.address[:2]
        logger.info(f"Status server listening on {host}:{port}")
        self.httpd.serve_forever()

    def start(self) -> threading.Thread:
        """Serve on a daemon thread."""
        self._thread = threading.Thread(target=self.serve_forever, name="status-server", daemon=True)
        self._thread.start()
        return self._thread

    def shutdown(self):
        self.httpd.shutdown()
        self.httpd.server_close()
        if self._thread is not None:
            self._thread.join()
