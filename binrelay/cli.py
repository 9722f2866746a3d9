from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Optional, Sequence

import uvicorn
from prometheus_client import start_http_server
from redis import Redis

from .capture import BinlogSource, ChangeNormalizer, MySQLSchemaProvider
from .config import CaptureConfig, load_capture_configs, load_replay_configs
from .db.session import make_engine
from .delivery import create_app
from .errors import BinrelayError
from .position import PositionTracker
from .queue import FileTaskQueueStore, RedisTaskQueueStore, TaskQueueStore
from .replay import ReplayEngine

logger = logging.getLogger("binrelay")


def make_store(config: CaptureConfig) -> TaskQueueStore:
    if config.queue_backend == "redis":
        return RedisTaskQueueStore(Redis.from_url(config.redis_url, decode_responses=False))
    return FileTaskQueueStore(config.queue_dir, fsync=config.fsync)


def _raise_system_exit(signum, frame) -> None:
    raise SystemExit(0)


def run_capture(config: CaptureConfig) -> None:
    store = make_store(config)
    tracker = PositionTracker(config.position_file())
    source_engine = make_engine(config.source_url().render_as_string(hide_password=False))
    normalizer = ChangeNormalizer(
        MySQLSchemaProvider(source_engine),
        store,
        tracker,
        config.tasks,
        checkpoint_every=config.checkpoint_every,
    )

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(store),
            host=config.listen_host,
            port=config.listen_port,
            log_level="info",
        )
    )
    server_thread = threading.Thread(target=server.run, name="delivery", daemon=True)
    server_thread.start()
    logger.info("Delivery endpoint listening on %s:%d", config.listen_host, config.listen_port)

    source = BinlogSource(config, normalizer, normalizer)
    source.open(tracker.load())
    try:
        source.run()
    finally:
        normalizer.flush()
        source.close()
        server.should_exit = True
        server_thread.join(timeout=5)
        store.close()
        source_engine.dispose()


def run_replay(path: str, metrics_port: Optional[int] = None) -> None:
    configs = load_replay_configs(path)
    if metrics_port:
        start_http_server(metrics_port)

    engines = []
    threads = []
    for config in configs:
        engine = ReplayEngine(config, make_engine(config.target_url, config.statement_timeout))
        engines.append(engine)
        thread = threading.Thread(target=engine.run, name=f"replay-{config.task_name}", daemon=True)
        threads.append(thread)
        thread.start()

    try:
        for thread in threads:
            while thread.is_alive():
                thread.join(timeout=1)
    finally:
        for engine in engines:
            engine.close()
            engine.engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="binrelay", description="Relay MySQL row changes to remote replicas")
    parser.add_argument("--log-level", default="INFO", help="Root log level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    capture = sub.add_parser("capture", help="Capture binlog changes and serve task queues")
    capture.add_argument("--config", default="serverConfig.json", help="Capture config file")

    replay = sub.add_parser("replay", help="Poll task queues and replay them on a target database")
    replay.add_argument("--config", default="clientConfig.json", help="Replay config file")
    replay.add_argument("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )
    signal.signal(signal.SIGTERM, _raise_system_exit)

    try:
        if args.command == "capture":
            configs = load_capture_configs(args.config)
            if len(configs) > 1:
                logger.warning("Only the first of %d capture configs is used", len(configs))
            run_capture(configs[0])
        else:
            run_replay(args.config, args.metrics_port)
    except BinrelayError as exc:
        logger.critical("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
