import sys
from pathlib import Path

import pytest
from shapely.geometry import LineString, box


# Ensure the repo root is on sys.path so tests can import local packages
# like `charts.*`, `compose.*` and `geo.*` without installing.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from chart_fixtures import CountingReader, write_chart  # noqa: E402


@pytest.fixture
def enc_root(tmp_path) -> Path:
    root = tmp_path / "ENC_ROOT"
    root.mkdir()
    return root


@pytest.fixture
def reader() -> CountingReader:
    return CountingReader()


@pytest.fixture
def make_chart(enc_root):
    def _make(identity: str, **kw) -> Path:
        return write_chart(enc_root, identity, **kw)

    return _make


@pytest.fixture
def scenario_charts(make_chart):
    """
    Two overlapping cells laid out like Narragansett Bay:
    A (scale 8000) sits inside B (scale 20000).
    """
    a = make_chart(
        "US5RI10M",
        scale=8000,
        coverage=[(box(-71.6, 41.3, -71.4, 41.5), 1)],
        layers={
            "LNDARE": [(10, box(-71.52, 41.38, -71.48, 41.42), {"OBJNAM": "Prudence"})],
            "DEPCNT": [(1, LineString(box(-71.58, 41.32, -71.42, 41.48).exterior.coords), {"VALDCO": 5.0})],
        },
    )
    b = make_chart(
        "US4RI01M",
        scale=20000,
        coverage=[(box(-71.7, 41.2, -71.3, 41.6), 1)],
        layers={
            "LNDARE": [(10, box(-71.50, 41.36, -71.46, 41.44), {"OBJNAM": "Prudence"})],
            "DEPCNT": [(78, LineString(box(-71.53, 41.37, -71.47, 41.43).exterior.coords), {"VALDCO": 20.0})],
        },
    )
    return a, b
