import sys
from pathlib import Path
import json
import pytest

# Ensure repo root is on sys.path so `import podbrief...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from podbrief.store.catalog import CATALOG  # noqa: E402


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


@pytest.fixture(autouse=True)
def fresh_catalog():
    """Each test starts with an empty in-memory catalog."""
    CATALOG.clear()
    yield CATALOG
    CATALOG.clear()


@pytest.fixture(autouse=True)
def fresh_rate_limiter():
    """Reset the per-IP limiter so the whole suite never trips 429 by accident."""
    from podbrief.main import rate_limiter
    rate_limiter.reset()
    yield rate_limiter


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Attach request/response payloads into pytest-html report.

    In tests, store payloads like:
      item._api_logs = [{"title": "...", "request": ..., "response": ...}, ...]
    """
    outcome = yield
    rep = outcome.get_result()

    if rep.when != "call":
        return

    api_logs = getattr(item, "_api_logs", None)
    if not api_logs:
        return

    extras = getattr(rep, "extras", [])

    try:
        from pytest_html import extras as html_extras
    except ImportError:
        return

    for entry in api_logs:
        title = entry.get("title", "API Call")
        html = f"""
        <div style="font-family: ui-monospace, Menlo, Consolas, monospace;">
          <h4 style="margin:8px 0;">{title}</h4>
          <details><summary><b>Request</b></summary><pre>{pretty_json(entry.get("request", {}))}</pre></details>
          <details><summary><b>Response</b></summary><pre>{pretty_json(entry.get("response", {}))}</pre></details>
        </div>
        """
        extras.append(html_extras.html(html))

    rep.extras = extras
