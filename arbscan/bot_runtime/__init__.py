from .assets import read_asset_list
from .logging import setup_logger
from .loop import compute_scan_delay, run_scan_loop, wait_with_stop
from .settings import AppSettings

__all__ = [
    "AppSettings",
    "compute_scan_delay",
    "read_asset_list",
    "run_scan_loop",
    "setup_logger",
    "wait_with_stop",
]
