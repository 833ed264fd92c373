"""
Command-line interface for the knative-run proxy.

Usage:
    knative-run-proxy
    knative-run-proxy --port 6443 --verbose
"""

import argparse
import logging
import sys

import uvicorn

from knative_run_proxy.config import ProxyConfig, get_config
from knative_run_proxy.identity import IdentityError, TLSIdentity, generate_identity
from knative_run_proxy.server import create_app


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Configure logging.

    Args:
        verbose: Whether to enable verbose logging
        level: Log level used when not verbose
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Local kubectl endpoint for Cloud Run (Knative) services",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start on the default address (https://localhost:6443)
    knative-run-proxy

    # Trust the printed certificate, then
    kubectl config set-cluster run --server=https://localhost:6443
    kubectl config set clusters.run.certificate-authority-data <printed value>
        """,
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: localhost or KNATIVE_RUN_PROXY_LISTEN_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: 6443 or KNATIVE_RUN_PROXY_LISTEN_PORT)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def serve(config: ProxyConfig, identity: TLSIdentity, verbose: bool = False) -> None:
    """Run uvicorn with the in-memory TLS identity."""
    uv_config = uvicorn.Config(
        create_app(config),
        host=config.listen_host,
        port=config.listen_port,
        log_level="debug" if verbose else config.log_level.lower(),
    )
    uv_config.load()
    # uvicorn only takes key material from files; hand it a ready context instead
    uv_config.ssl = identity.ssl_context()
    uvicorn.Server(uv_config).run()


def main() -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code
    """
    args = build_parser().parse_args()

    config = get_config().with_overrides(listen_host=args.host, listen_port=args.port)

    setup_logging(args.verbose, config.log_level)
    logger = logging.getLogger(__name__)

    try:
        identity = generate_identity(config.cert_dns_names, config.cert_key_size)
    except IdentityError as e:
        logger.error(f"Failed to self-sign TLS certificate: {e}")
        return 1

    for line in config.get_summary().splitlines():
        logger.info(line)
    logger.info(f"CA certificate (PEM in base64 format):\n{identity.b64_cert()}")

    try:
        serve(config, identity, verbose=args.verbose)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 0
    except OSError as e:
        logger.error(f"Server error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
