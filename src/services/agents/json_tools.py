"""Robust JSON extraction from model responses using brace balancing."""

import json


def extract_json(text: str) -> dict | list | None:
    """Try to extract the first valid JSON object or array from *text*.

    Strategy:
    1. Attempt ``json.loads`` on the full text (fast path).
    2. Strip a markdown code fence if the model added one.
    3. Slide through the text looking for ``{`` or ``[`` and attempt
       brace-balanced extraction.
    4. Return ``None`` if nothing works.
    """
    if not text or not text.strip():
        return None

    stripped = text.strip()

    try:
        return json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        pass

    if stripped.startswith("```"):
        fenced = stripped.strip("`")
        if fenced.lower().startswith("json"):
            fenced = fenced[4:]
        try:
            return json.loads(fenced.strip())
        except (json.JSONDecodeError, ValueError):
            pass

    for i, ch in enumerate(stripped):
        if ch in "{[":
            result = _extract_balanced(stripped, i, ch, "}" if ch == "{" else "]")
            if result is not None:
                return result

    return None


def _extract_balanced(text: str, start: int, open_ch: str, close_ch: str) -> dict | list | None:
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape:
            escape = False
            continue

        if ch == "\\":
            if in_string:
                escape = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start : i + 1])
                except (json.JSONDecodeError, ValueError):
                    return None

    return None
