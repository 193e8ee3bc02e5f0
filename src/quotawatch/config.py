import os
from dataclasses import dataclass
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".quotawatch"


@dataclass
class Config:
    # directory holding accounts.json, quota_history.json
    # and the optional quota_buffer.json
    data_dir: "Path" = _DEFAULT_DATA_DIR
    # listen_address: format ":9186" or "0.0.0.0:9186";
    # empty disables the metrics endpoint
    listen_address: "str" = ""
    log_level: "str" = "info"
    # "console" or "json"
    log_format: "str" = "console"
    # upper bound for a single quota fetch, in seconds
    fetch_timeout: "float" = 5.0
    # file naming the active account; empty disables reconciliation
    active_marker: "str" = ""
    # "DISPLAY:BUCKET" minutes; when set, print one chart and exit
    chart: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        data_dir = os.environ.get("QUOTAWATCH_DATA_DIR", "")
        return cls(
            data_dir=Path(data_dir) if data_dir else _DEFAULT_DATA_DIR,
            fetch_timeout=float(os.environ.get("QUOTAWATCH_FETCH_TIMEOUT", "5.0")),
            active_marker=os.environ.get("QUOTAWATCH_ACTIVE_MARKER", ""),
        )

    @property
    def accounts_path(self) -> "Path":
        return self.data_dir / "accounts.json"

    @property
    def history_path(self) -> "Path":
        return self.data_dir / "quota_history.json"

    @property
    def buffer_path(self) -> "Path":
        return self.data_dir / "quota_buffer.json"

    @property
    def chart_params(self) -> "tuple[int, int] | None":
        """
        parses `chart` into (display_minutes, bucket_minutes).
        """
        if not self.chart:
            return None
        display, _, bucket = self.chart.partition(":")
        return (int(display), int(bucket or display))
