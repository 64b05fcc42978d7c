"""
Versioned prompt loader: reads prompts from podbrief/prompts/{version}/{component}.yaml.
Use PROMPT_VERSION (default v1) to select version.
"""
import re
from functools import lru_cache
from pathlib import Path

import yaml

_PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=32)
def load_prompts(
    component: str,
    version: str | None = None,
) -> dict[str, str]:
    """Load prompt templates for a component. Returns dict with keys "system" and optionally "user"; user templates carry placeholders like <<TITLE>> and <<TRANSCRIPT>>.
    Why available: Keeps the quick and deep summary prompts editable and versioned outside the code."""
    if version is None:
        from podbrief.core.config import settings
        version = settings.prompt_version

    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    out: dict[str, str] = {}
    for key in ("system", "user"):
        val = data.get(key)
        if val is not None:
            out[key] = val.strip() if isinstance(val, str) else str(val).strip()
    return out


def get_system_prompt(component: str, version: str | None = None) -> str:
    """Return the 'system' prompt for component (e.g. summary_quick, summary_deep). Raises ValueError if missing."""
    prompts = load_prompts(component, version=version)
    if "system" not in prompts:
        raise ValueError(f"Component {component} has no 'system' prompt in version {version}")
    return prompts["system"]


def get_user_prompt(component: str, version: str | None = None) -> str:
    prompts = load_prompts(component, version=version)
    if "user" not in prompts:
        raise ValueError(f"Component {component} has no 'user' prompt in version {version}")
    return prompts["user"]


def render_user_prompt(component: str, values: dict[str, str], version: str | None = None) -> str:
    """Fill <<KEY>> placeholders in the user prompt for component. Raises KeyError if a placeholder is left unfilled."""
    template = get_user_prompt(component, version=version)
    missing = set(re.findall(r"<<([A-Z_]+)>>", template)) - set(values)
    if missing:
        raise KeyError(f"Prompt {component} needs values for {sorted(missing)}")
    return re.sub(r"<<([A-Z_]+)>>", lambda m: values[m.group(1)], template)
