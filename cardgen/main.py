"""Main entry point for the cardinality load generator."""
import argparse
import logging
import signal
import sys

from cardgen.config import load_config
from cardgen.engine import Orchestrator
from cardgen.otel_exporter import ExporterOptions
from cardgen.prom_exporter import SelfMetrics, start_self_metrics_server
from cardgen.series import SeriesCatalog


def setup_logging(log_level: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("opentelemetry").setLevel(logging.WARNING)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cardgen",
        description="Synthetic metrics load generator - push high-cardinality gauges over OTLP"
    )
    parser.add_argument("--config", "-c", default="cardgen.yaml", help="Path to config file")
    parser.add_argument("--endpoint", default="localhost:4317", help="OTLP endpoint (host:port)")
    parser.add_argument(
        "--plaintext",
        action="store_true",
        help="Use plaintext connection instead of TLS"
    )
    parser.add_argument("--token", default="", help="Bearer token for authentication")
    parser.add_argument("--username", default="", help="Username for Basic authentication")
    parser.add_argument("--password", default="", help="Password for Basic authentication")
    parser.add_argument("--http", action="store_true", help="Use HTTP instead of gRPC")
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=0,
        help="Serve Prometheus self-metrics on this port (0 disables)"
    )
    parser.add_argument("--log-level", default=None, help="Override log level from config")
    return parser


def exporter_options(args: argparse.Namespace) -> ExporterOptions:
    return ExporterOptions(
        endpoint=args.endpoint,
        plaintext=args.plaintext,
        token=args.token,
        username=args.username,
        password=args.password,
        protocol="http" if args.http else "grpc",
    )


def main(argv=None) -> int:
    """Main function."""
    args = create_parser().parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(args.log_level or config.log_level)
    logger = logging.getLogger(__name__)

    catalog = SeriesCatalog.from_config(config)
    catalog.log_summary(logger)

    self_metrics = None
    if args.metrics_port:
        self_metrics = SelfMetrics()
        try:
            start_self_metrics_server(args.metrics_port, self_metrics.registry)
        except OSError as e:
            logger.error(f"Failed to start self-metrics server on port {args.metrics_port}: {e}")
            return 1

    orchestrator = Orchestrator(config, catalog, exporter_options(args), self_metrics=self_metrics)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        orchestrator.token.cancel()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        orchestrator.start()
    except Exception as e:
        logger.error(f"Failed to start services: {e}")
        orchestrator.stop(grace_s=0)
        return 1

    logger.info("Press Ctrl+C to shutdown")
    orchestrator.wait()
    logger.info("=" * 60)
    logger.info("Shutting down")
    orchestrator.stop()
    logger.info("Bye")

    if orchestrator.failed:
        logger.error(f"Stopped after fatal error: {orchestrator.token.reason}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
