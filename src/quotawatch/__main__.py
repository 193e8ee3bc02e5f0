import asyncio
import json
import signal

import structlog
from prometheus_client import start_http_server

from quotawatch.accounts import AccountDirectory
from quotawatch.bucketizer import usage_chart
from quotawatch.cli import parse_args
from quotawatch.history import SnapshotStore
from quotawatch.logging import setup_logging
from quotawatch.metrics import SamplerMetrics
from quotawatch.provider.base import IdentityReconciler
from quotawatch.provider.cloudcode import CloudCodeQuotaSource
from quotawatch.provider.identity import MarkerFileReconciler, NoopReconciler
from quotawatch.scheduler import ScheduleTimings, Sampler

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_format)

    directory = AccountDirectory(config.accounts_path)
    store = SnapshotStore(config.history_path)

    chart_params = config.chart_params
    if chart_params is not None:
        display_minutes, bucket_minutes = chart_params
        chart = usage_chart(store, directory, display_minutes, bucket_minutes)
        print(json.dumps(chart.to_dict(), indent=2, ensure_ascii=False))
        return

    if config.listen_address:
        host, port = _parse_listen_address(config.listen_address)
        start_http_server(port, addr=host)
        logger.info("metrics_server_started", host=host, port=port)

    reconciler: "IdentityReconciler" = NoopReconciler()
    if config.active_marker:
        reconciler = MarkerFileReconciler(config.active_marker)

    async def _run() -> "None":
        sampler = Sampler(
            CloudCodeQuotaSource(timeout=config.fetch_timeout),
            directory,
            store,
            SamplerMetrics(),
            reconciler=reconciler,
            buffer_path=config.buffer_path,
            timings=ScheduleTimings(fetch_timeout=config.fetch_timeout),
        )

        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the sampler
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, sampler.stop)

        logger.info("sampler_started", data_dir=str(config.data_dir))
        try:
            await sampler.run()
        finally:
            logger.info("shutting_down")
            await sampler.close()
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
