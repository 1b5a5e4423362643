from __future__ import annotations

from pathlib import Path

from arbscan.trading.errors import ConfigurationError


def read_asset_list(path: str | Path) -> list[str]:
    """Read one asset identifier per line; blanks and repeats are dropped."""
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigurationError(f"asset list not found: {file_path}")

    assets: list[str] = []
    seen: set[str] = set()
    for line in file_path.read_text(encoding="utf-8").splitlines():
        asset = line.strip()
        if not asset or asset in seen:
            continue
        seen.add(asset)
        assets.append(asset)
    return assets
