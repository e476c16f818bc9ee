"""chia-watcher — entry point."""

import logging
import signal
import sys
import threading

from chia_watcher.config import build_cli_parser, load_config, load_yaml_config
from chia_watcher.ingest import run_ingestion
from chia_watcher.metrics import MetricsSink
from chia_watcher.server import MetricsServer, create_metrics_app
from chia_watcher.tailer import TailError, open_stream

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        stream=sys.stderr,
    )

    parser = build_cli_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args, load_yaml_config(args.config))
    except ValueError as exc:
        parser.error(str(exc))
    logging.getLogger().setLevel(config.log_level)

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Watching log file %s", config.log_file)
    try:
        stream = open_stream(
            config.log_file,
            shutdown_event=shutdown_event,
            poll_interval=config.poll_interval,
            rotate_grace=config.rotate_grace,
        )
    except TailError as exc:
        logger.error("%s", exc)
        return 1

    with stream:
        sink = MetricsSink()
        try:
            server = MetricsServer(
                create_metrics_app(sink),
                config.listen_host, config.listen_port,
                request_timeout=config.request_timeout,
            )
        except OSError as exc:
            logger.error("Cannot listen on %s:%d: %s", config.listen_host, config.listen_port, exc)
            return 1

        server.start()
        try:
            stats = run_ingestion(stream, sink)
        except TailError as exc:
            logger.error("Lost log file: %s", exc)
            return 1
        finally:
            server.stop()

    logger.info("Stats: %d lines read, %d parsed, %d harvest events recorded",
                stats.lines_seen, stats.lines_parsed, stats.events_applied)
    return 0


if __name__ == "__main__":
    sys.exit(main())
