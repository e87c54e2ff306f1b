import os
from pathlib import Path

import pytest

# Test directory -> marker applied to everything collected under it
_DIRECTORY_MARKERS = {
    "/domain/": "domain",
    "/gateway/": "gateway",
    "/application/": "application",
    "/integration/": "integration",
    "/bdd/": "bdd",
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Protean config overlay to run the billing tests against",
    )


def pytest_sessionstart(session):
    """Select the Protean config overlay before the billing domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    for item in items:
        test_path = str(Path(item.fspath))
        for directory, marker in _DIRECTORY_MARKERS.items():
            if directory in test_path:
                item.add_marker(getattr(pytest.mark, marker))
                break

        # HTTP tests are slow unless marked otherwise
        if "/integration/" in test_path and not any(m.name == "fast" for m in item.iter_markers()):
            item.add_marker(pytest.mark.slow)
