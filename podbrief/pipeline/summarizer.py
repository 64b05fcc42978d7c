import json
import logging
from typing import Dict, Any

from podbrief.core.config import settings
from podbrief.core.openai_client import get_openai_client
from podbrief.prompts.loader import get_system_prompt, render_user_prompt
from podbrief.utils.retry import with_retry

logger = logging.getLogger(__name__)

_MAX_TOKENS = {"quick": 1500, "deep": 4000}


def empty_summary(level: str) -> Dict[str, Any]:
    """Empty schema for a summary level."""
    if level == "quick":
        return {"tldr": None, "key_takeaways": [], "who_is_this_for": None, "topics": []}
    return {"tldr": None, "sections": [], "resources": [], "action_prompts": [], "topics": []}


def _safe_json_loads(raw: str) -> Dict[str, Any]:
    """Parse the LLM output as JSON. If that fails, tries the first {...} block; otherwise returns {}.
    Why available: Makes summary extraction robust to malformed or fenced LLM output."""
    raw = (raw or "").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        return data if isinstance(data, dict) else {}
    except json.JSONDecodeError:
        start = raw.find("{")
        end = raw.rfind("}")
        if start != -1 and end > start:
            try:
                data = json.loads(raw[start : end + 1])
                return data if isinstance(data, dict) else {}
            except json.JSONDecodeError:
                pass
    return {}


def _str_list(val) -> list:
    return [str(x).strip() for x in val if x and str(x).strip()] if isinstance(val, list) else []


def _opt_str(val):
    return (val.strip() or None) if isinstance(val, str) else None


def normalize_summary(data: Dict[str, Any], level: str) -> Dict[str, Any]:
    """Coerce parsed LLM output into the fixed schema for level; unknown keys are dropped and malformed items skipped."""
    out = empty_summary(level)
    out["tldr"] = _opt_str(data.get("tldr"))
    out["topics"] = _str_list(data.get("topics"))

    if level == "quick":
        out["key_takeaways"] = _str_list(data.get("key_takeaways"))
        out["who_is_this_for"] = _opt_str(data.get("who_is_this_for"))
        return out

    for sec in data.get("sections") or []:
        if isinstance(sec, dict) and _opt_str(sec.get("title")):
            out["sections"].append({
                "title": sec["title"].strip(),
                "summary": _opt_str(sec.get("summary")) or "",
                "key_points": _str_list(sec.get("key_points")),
            })
    for res in data.get("resources") or []:
        if not isinstance(res, dict) or not _opt_str(res.get("label")):
            continue
        item = {"type": _opt_str(res.get("type")) or "other", "label": res["label"].strip()}
        url = _opt_str(res.get("url"))
        if url and url.startswith(("http://", "https://")):
            item["url"] = url
        notes = _opt_str(res.get("notes"))
        if notes:
            item["notes"] = notes
        out["resources"].append(item)
    for act in data.get("action_prompts") or []:
        if isinstance(act, dict) and _opt_str(act.get("title")):
            out["action_prompts"].append({
                "title": act["title"].strip(),
                "details": _opt_str(act.get("details")) or "",
            })
    return out


def summarize_transcript(transcript: str, title: str, level: str = "deep") -> Dict[str, Any]:
    """Generate a quick or deep summary of a transcript via the chat model. The transcript is truncated to MAX_TRANSCRIPT_CHARS.
    Raises ValueError when the model returns nothing usable, so the job is marked failed instead of storing an empty summary."""
    text = (transcript or "").strip()
    if not text:
        raise ValueError("Transcript is empty")

    component = f"summary_{level}"
    system_prompt = get_system_prompt(component)
    user_msg = render_user_prompt(component, {
        "TITLE": title or "Untitled episode",
        "TRANSCRIPT": text[: settings.max_transcript_chars],
    })

    oc = get_openai_client()
    resp = with_retry(
        lambda: oc.chat.completions.create(
            model=settings.chat_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_msg},
            ],
            temperature=0.2,
            max_tokens=_MAX_TOKENS.get(level, 4000),
        ),
        label=f"summary_{level}",
    )

    raw = resp.choices[0].message.content or ""
    data = _safe_json_loads(raw)
    if not data:
        logger.warning("summary_unparseable", extra={"level": level, "raw_preview": raw[:120]})
        raise ValueError("Summary generation returned no JSON")
    return normalize_summary(data, level)
