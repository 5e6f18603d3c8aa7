"""Load problem sets from bundled JSON, local files, or HTTP sources."""

from __future__ import annotations

import json
import logging
import threading
from importlib import resources
from pathlib import Path
from typing import cast

import requests

from .models import Problem

CONTENT_PACKAGE = "phrasereorder.content"
PROBLEMS_FILE = "problems.json"

logger = logging.getLogger(__name__)


class SchemaError(ValueError):
    """Problem payload does not have the expected structure."""


class NetworkError(RuntimeError):
    """Problem payload could not be retrieved."""


def _problem_from_dict(raw: object, position: int) -> Problem:
    """Build one problem, rejecting anything but `{tokens: [str, ...], note: str}`."""
    if not isinstance(raw, dict):
        raise SchemaError(f"Problem entry {position} is not an object.")
    row = cast(dict[str, object], raw)
    tokens = row.get("tokens")
    if not isinstance(tokens, list) or not tokens:
        raise SchemaError(f"Problem entry {position} must have a non-empty tokens list.")
    token_items = cast(list[object], tokens)
    if not all(isinstance(token, str) for token in token_items):
        raise SchemaError(f"Problem entry {position} has a non-string token.")
    note = row.get("note")
    if not isinstance(note, str):
        raise SchemaError(f"Problem entry {position} must have a string note.")
    return Problem(tokens=tuple(cast(list[str], token_items)), note=note)


def problems_from_payload(data: object) -> list[Problem]:
    """Validate a decoded payload; one malformed entry fails the whole load."""
    if not isinstance(data, list):
        raise SchemaError("Problems payload is not an array as expected.")
    return [_problem_from_dict(item, position) for position, item in enumerate(cast(list[object], data))]


def _decode(text: str, origin: str) -> list[Problem]:
    try:
        data: object = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Problems payload from {origin} is not valid JSON: {exc.msg}.") from exc
    return problems_from_payload(data)


def load_problems() -> list[Problem]:
    """Load the bundled problem set."""
    entry = resources.files(CONTENT_PACKAGE).joinpath(PROBLEMS_FILE)
    return _decode(entry.read_text(encoding="utf-8-sig"), PROBLEMS_FILE)


def load_problems_from_path(path: Path | str) -> list[Problem]:
    """Load a problem set from a JSON file."""
    file_path = Path(path)
    return _decode(file_path.read_text(encoding="utf-8-sig"), str(file_path))


def _is_http(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _download(url: str, timeout: float) -> str:
    try:
        response = requests.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    except requests.RequestException as exc:
        raise NetworkError(f"Unable to load problems ({exc.__class__.__name__}).") from exc
    if not response.ok:
        raise NetworkError(f"Unable to load problems ({response.status_code} {response.reason}).")
    return response.text


def fetch_problems(
    source: Path | str | None = None,
    *,
    cancel: threading.Event | None = None,
    cache_path: Path | str | None = None,
    timeout: float = 10.0,
) -> list[Problem] | None:
    """Fetch a problem set, returning None when `cancel` was set before completion.

    `source` may be an http(s) URL, a local path, or None for the bundled set.
    For URLs, a `cache_path` is refreshed on success and read back when the
    network fails.
    """
    if cancel is not None and cancel.is_set():
        return None

    if source is None:
        problems = load_problems()
    elif isinstance(source, str) and _is_http(source):
        problems = _fetch_remote(source, cache_path, timeout)
    else:
        try:
            problems = load_problems_from_path(source)
        except OSError as exc:
            raise NetworkError(f"Unable to load problems from {source} ({exc.strerror or exc}).") from exc

    if cancel is not None and cancel.is_set():
        logger.debug("Discarding problem set from %s: fetch was cancelled.", source)
        return None
    return problems


def _fetch_remote(url: str, cache_path: Path | str | None, timeout: float) -> list[Problem]:
    try:
        text = _download(url, timeout)
    except NetworkError:
        if cache_path is None or not Path(cache_path).exists():
            raise
        logger.warning("Network fetch of %s failed; using cached copy at %s.", url, cache_path)
        try:
            return load_problems_from_path(cache_path)
        except OSError as exc:
            raise NetworkError(f"Unable to load cached problems from {cache_path} ({exc.strerror or exc}).") from exc

    problems = _decode(text, url)
    if cache_path is not None:
        target = Path(cache_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not refresh problem cache at %s: %s", target, exc)
    return problems
