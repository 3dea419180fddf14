from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any, Iterable, Mapping


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
_catalog: dict[str, Any] | None = None


def _load_catalog() -> dict[str, Any]:
    """Read the prompt catalog once per process."""
    global _catalog
    if _catalog is None:
        payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Prompt catalog {PROMPTS_PATH} must be a JSON object")
        _catalog = payload
    return _catalog


def get_template(key: str) -> Template:
    """Look up a dotted key such as ``chain.refine_prompt``."""
    node: Any = _load_catalog()
    for part in key.split("."):
        node = node.get(part) if isinstance(node, dict) else None
        if node is None:
            raise KeyError(f"Unknown prompt: {key}")
    if not isinstance(node, str):
        raise TypeError(f"Prompt {key} is not a template string")
    return Template(node)


def render_prompt(key: str, **values: Any) -> str:
    template = get_template(key)
    try:
        return template.substitute(**values)
    except KeyError as exc:
        raise KeyError(f"Prompt {key} needs a value for {exc.args[0]!r}") from exc


def clear_prompt_cache() -> None:
    """Forget the loaded catalog so the next render re-reads the file."""
    global _catalog
    _catalog = None


# --- Builders ---


def chain_prompt(query: str, first_label: str, first_response: str) -> str:
    """Second-stage prompt embedding the query and the first answer verbatim."""
    return render_prompt(
        "chain.refine_prompt",
        query=query,
        first_label=first_label,
        first_response=first_response,
    )


def image_prompt(query: str) -> str:
    return render_prompt("augment.image_preamble", query=query)


def file_prompt(query: str, *, file_name: str, file_type: str, file_url: str) -> str:
    return render_prompt(
        "augment.file_preamble",
        query=query,
        file_name=file_name or "unknown",
        file_type=file_type or "unknown",
        file_url=file_url or "not provided",
    )


def format_turns(messages: Iterable[Mapping[str, Any]]) -> str:
    """Render stored messages as ``User: ...`` / ``AI: ...`` lines."""
    lines = []
    for message in messages:
        speaker = "User" if message.get("isUser") else "AI"
        lines.append(f"{speaker}: {message.get('content', '')}")
    return "\n".join(lines)


def context_prompt(query: str, messages: list[Mapping[str, Any]], window: int) -> str:
    """Prepend the last ``window`` turns to ``query``; no-op without history."""
    if window <= 0 or not messages:
        return query
    history = format_turns(messages[-window:])
    return render_prompt("augment.context_preamble", history=history, query=query)
