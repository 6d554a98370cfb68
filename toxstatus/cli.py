#!/usr/bin/env python3
"""
toxstatus CLI

Scan Tox bootstrap nodes once, probe a single node, or run the periodic
scanner together with the status server.
"""

import argparse
import json
import sys
import time
import logging
from typing import Any, Dict

from .core.logging import setup_logging
from .errors import DirectorySourceError, StartupError
from .probe_components.config_helper import ToxStatusConfig, load_config
from .probe_components.crypto_provider import CryptoProvider
from .scanner import SnapshotStore, build_scheduler, probe_bootstrap_node, scan_directory
from .status_server import StatusServer

logger = logging.getLogger(__name__)


def parse_csv_ints(csv_string: str):
    """Parse comma-separated integers"""
    try:
        return [int(x.strip()) for x in csv_string.split(',') if x.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid port list: {e}")


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map CLI flags onto config field names; unset flags stay None."""
    return {
        'listen_host': getattr(args, 'host', None),
        'listen_port': getattr(args, 'port', None),
        'refresh_interval': getattr(args, 'interval', None),
        'directory_url': getattr(args, 'source', None),
        'connect_timeout': getattr(args, 'connect_timeout', None),
        'read_timeout': getattr(args, 'read_timeout', None),
        'tcp_ports': getattr(args, 'tcp_ports', None),
        'log_level': 'DEBUG' if args.verbose else None,
    }


def serve(config: ToxStatusConfig) -> int:
    """Run the scanner loop and the status server until interrupted."""
    crypto = CryptoProvider.generate()
    store = SnapshotStore()
    scheduler = build_scheduler(config, store=store, crypto=crypto)
    try:
        server = StatusServer(store, config.listen_host, config.listen_port)
    except (OSError, OverflowError) as e:
        raise StartupError(
            f"Could not listen on {config.listen_host}:{config.listen_port}: {e}"
        ) from e

    scheduler.start()
    server.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.shutdown()
        scheduler.stop(timeout=1)
    return 0


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog='toxstatus',
        description="toxstatus - Tox bootstrap node status monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan continuously and serve status on :8081
  toxstatus serve

  # Serve on another port, rescanning every 5 minutes
  toxstatus serve --port 8082 --interval 300

  # One scan of the directory, printed as JSON
  toxstatus scan --source nodes.txt

  # Probe a single node
  toxstatus probe 144.217.167.73 33445 7E5668E0EE09E19F320AD47902419331FFEE147BB3606769CFBE921A2A2FD34C
        """
    )
    parser.add_argument('--config', help='YAML config file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    serve_parser = subparsers.add_parser('serve', help='Scan periodically and serve the status page')
    serve_parser.add_argument('--host', help='Status server listen address')
    serve_parser.add_argument('--port', type=int, help='Status server listen port (default: 8081)')
    serve_parser.add_argument('--interval', type=float, help='Seconds between scans (default: 60)')

    scan_parser = subparsers.add_parser('scan', help='Scan the node directory once')

    probe_parser = subparsers.add_parser('probe', help='Probe a single bootstrap node')
    probe_parser.add_argument('ipv4', help='Node IPv4 address')
    probe_parser.add_argument('node_port', type=int, help='Node UDP port')
    probe_parser.add_argument('public_key', help='Node public key (hex)')

    for sub in (serve_parser, scan_parser, probe_parser):
        sub.add_argument('--connect-timeout', type=float, help='Connect timeout in seconds (default: 2)')
        sub.add_argument('--read-timeout', type=float, help='Read timeout in seconds (default: 4)')
        sub.add_argument('--tcp-ports', type=parse_csv_ints,
                         help='Comma-separated well-known TCP ports (default: 443,3389,33445)')
    for sub in (serve_parser, scan_parser):
        sub.add_argument('--source', help='Node directory URL or file path')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = load_config(args.config, overrides=config_overrides(args))
    except (OSError, ValueError) as e:
        print(json.dumps({"error": f"Invalid configuration: {e}"}), file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, debug=args.verbose)

    try:
        if args.command == 'serve':
            sys.exit(serve(config))
        elif args.command == 'scan':
            result = scan_directory(config)
        else:
            result = probe_bootstrap_node(args.ipv4, args.node_port, args.public_key, config)

        print(json.dumps(result, indent=2))

    except StartupError as e:
        logger.error(str(e))
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        sys.exit(1)
    except DirectorySourceError as e:
        logger.error(f"Scan failed: {e}")
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print(json.dumps({"error": "Scan cancelled by user"}), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
