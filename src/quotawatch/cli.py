import argparse
from pathlib import Path

from quotawatch.config import Config


def chart_spec(value: "str") -> "str":
    """
    validates a --chart value of the form DISPLAY or DISPLAY:BUCKET,
    both positive minute counts. An empty value disables chart mode.
    """
    if not value:
        return value
    display, sep, bucket = value.partition(":")
    parts = [display, bucket] if sep else [display]
    for part in parts:
        try:
            minutes = int(part)
        except ValueError:
            raise argparse.ArgumentTypeError(
                f"invalid chart spec {value!r}: expected DISPLAY:BUCKET minutes"
            ) from None
        if minutes <= 0:
            raise argparse.ArgumentTypeError(
                f"invalid chart spec {value!r}: minutes must be positive"
            )
    return value


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = argparse.ArgumentParser(
        prog="quotawatch",
        description="Quota sampler and consumption chart builder",
    )
    parser.add_argument(
        "--data.dir",
        dest="data_dir",
        default=None,
        help="Directory for accounts and history files "
        "(default: $QUOTAWATCH_DATA_DIR or ~/.quotawatch)",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default="",
        help="Address to expose metrics on, e.g. :9186 (default: disabled)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default="console",
        choices=["console", "json"],
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--fetch.timeout",
        dest="fetch_timeout",
        type=float,
        default=None,
        help="Timeout in seconds for one quota fetch (default: 5)",
    )
    parser.add_argument(
        "--active.marker",
        dest="active_marker",
        default=None,
        help="File holding the active account's email or id",
    )
    parser.add_argument(
        "--chart",
        dest="chart",
        type=chart_spec,
        default="",
        metavar="DISPLAY:BUCKET",
        help="Print one usage chart as JSON and exit, e.g. 1440:60",
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    if args.data_dir is not None:
        config.data_dir = Path(args.data_dir)
    if args.fetch_timeout is not None:
        config.fetch_timeout = args.fetch_timeout
    if args.active_marker is not None:
        config.active_marker = args.active_marker
    config.listen_address = args.listen_address
    config.log_level = args.log_level
    config.log_format = args.log_format
    config.chart = args.chart
    return config
