"""
UPnP Explorer CLI entry point.

Provides command-line interface for running UPnP Explorer.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from upnp_explorer import __version__
from upnp_explorer.app import UPnPExplorer
from upnp_explorer.config import Config, ConfigError, load_config
from upnp_explorer.control_point import ControlPoint

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_NETWORK_ERROR = 3


def setup_logging(level: str = "info") -> None:
    """Configure logging to stdout."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="upnp-explorer",
        description="UPnP control point: discover devices and drive AV transport playback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  upnp-explorer --discover
  upnp-explorer --discover --timeout 10 --json
  upnp-explorer --config config.yaml
  upnp-explorer --http-port 8080 --static-dir ./public

Environment Variables:
  UPNP_EXPLORER_SEARCH_TARGET, UPNP_EXPLORER_MX, UPNP_EXPLORER_COLLECTION_WINDOW
  UPNP_EXPLORER_REGISTRY_TTL, UPNP_EXPLORER_REGISTRY_IDENTITY
  UPNP_EXPLORER_HTTP_TIMEOUT, UPNP_EXPLORER_RETRIES
  UPNP_EXPLORER_HTTP_PORT, UPNP_EXPLORER_BIND, UPNP_EXPLORER_STATIC_DIR
  UPNP_EXPLORER_LOG_LEVEL
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Discovery mode
    parser.add_argument(
        "--discover",
        action="store_true",
        help="Scan network for UPnP devices and exit",
    )
    parser.add_argument(
        "--timeout",
        "-t",
        type=float,
        metavar="SECONDS",
        help="Collection window in seconds (default: 5)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON (used with --discover)",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # Discovery
    discovery_group = parser.add_argument_group("Discovery")
    discovery_group.add_argument(
        "--search-target",
        "--st",
        metavar="TEXT",
        help="SSDP search target (default: ssdp:all)",
    )
    discovery_group.add_argument(
        "--mx",
        type=int,
        metavar="INT",
        help="SSDP MX value, 1-5 (default: 3)",
    )
    discovery_group.add_argument(
        "--no-initial-scan",
        action="store_true",
        help="Do not scan when the server starts",
    )

    # Registry
    registry_group = parser.add_argument_group("Registry")
    registry_group.add_argument(
        "--registry-ttl",
        type=float,
        metavar="SECONDS",
        help="Evict devices not seen for this long, 0 = never (default: 1800)",
    )
    registry_group.add_argument(
        "--identity",
        choices=["location", "udn"],
        help="Registry key: descriptor location or UDN (default: location)",
    )

    # Server
    server_group = parser.add_argument_group("Server")
    server_group.add_argument(
        "--http-port",
        type=int,
        metavar="INT",
        help="HTTP server port (default: 8080)",
    )
    server_group.add_argument(
        "--bind",
        metavar="TEXT",
        help="Bind address (default: 0.0.0.0)",
    )
    server_group.add_argument(
        "--static-dir",
        metavar="PATH",
        help="Serve UI files from this directory",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested config dict."""
    result: dict = {}

    # Map CLI args to config paths
    mappings = {
        "search_target": ("discovery", "search_target"),
        "mx": ("discovery", "mx"),
        "timeout": ("discovery", "collection_window"),
        "registry_ttl": ("registry", "ttl"),
        "identity": ("registry", "identity"),
        "http_port": ("server", "http_port"),
        "bind": ("server", "bind_address"),
        "static_dir": ("server", "static_dir"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        _set_nested(result, path, value)

    # Only set if explicitly requested
    if getattr(args, "no_initial_scan", False):
        _set_nested(result, ("discovery", "scan_on_start"), False)

    return result


def log_config(config: Config) -> None:
    """Log configuration summary."""
    logger.info(f"Search target: {config.discovery.search_target} (MX={config.discovery.mx})")
    ttl = f"{config.registry.ttl:.0f}s" if config.registry.ttl else "never"
    logger.info(f"Registry: keyed by {config.registry.identity}, eviction after {ttl}")
    logger.info(f"HTTP server: {config.server.bind_address}:{config.server.http_port}")
    if config.server.static_dir:
        logger.info(f"Serving UI from {config.server.static_dir}")


async def run_discovery(config: Config, json_output: bool) -> int:
    """
    Run one discovery round and print the devices found.

    Returns:
        Exit code
    """
    window = config.discovery.collection_window
    if not json_output:
        print(f"Scanning for UPnP devices ({window}s window)...")

    control_point = ControlPoint(config)
    await control_point.start()
    try:
        scan = control_point.rescan()
        if not scan.ok:
            logger.error(f"Discovery failed: {scan.error}")
            return EXIT_NETWORK_ERROR
        await asyncio.sleep(window)
        devices = control_point.list_devices().value or []
    finally:
        await control_point.stop()

    if json_output:
        output = {
            "devices": [d.to_dict() for d in devices],
            "count": len(devices),
        }
        print(json.dumps(output, indent=2))
        return EXIT_SUCCESS

    if not devices:
        print("\nNo UPnP devices found.")
        print("\nTroubleshooting tips:")
        print("  - Ensure your device is powered on and on the same network")
        print("  - Try increasing the window with --timeout 10")
        print("  - Check that multicast traffic (UDP 1900) is not firewalled")
        return EXIT_SUCCESS

    print(f"\nFound {len(devices)} UPnP device(s):\n")
    for d in devices:
        print(f"  {d.friendly_name or 'Unknown Device'}")
        print(f"    Address: {d.address or 'unknown'}")
        if d.device_type:
            print(f"    Type: {d.device_type}")
        if d.manufacturer:
            print(f"    Manufacturer: {d.manufacturer}")
        if d.model_name:
            print(f"    Model: {d.model_name}")
        print(f"    UDN: {d.udn or '-'}")
        print(f"    Location: {d.location}")
        transports = [s.service_id for s in d.services if s.is_av_transport]
        if transports:
            print(f"    AVTransport: {', '.join(transports)}")
        print()

    return EXIT_SUCCESS


def run_serve(config: Config) -> int:
    """
    Run the explorer server until interrupted.

    Returns:
        Exit code
    """
    log_config(config)

    try:
        app = UPnPExplorer(config)
        asyncio.run(app.run())
        return EXIT_SUCCESS

    except (ConnectionError, OSError) as e:
        logger.error(f"Network error: {e}")
        return EXIT_NETWORK_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 3=network error
    """
    args = parse_args(argv)

    # Setup basic logging first (will be reconfigured after config load)
    setup_logging("warning" if args.json_output else "info")

    try:
        config = load_config(args.config, args_to_dict(args))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    if not args.json_output:
        setup_logging(config.logging.level)
        logger.info(f"UPnP Explorer v{__version__}")

    if args.discover:
        return asyncio.run(run_discovery(config, args.json_output))
    return run_serve(config)


if __name__ == "__main__":
    sys.exit(main())
