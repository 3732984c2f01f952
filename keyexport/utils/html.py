"""HTML extraction helpers."""

from __future__ import annotations

import json
import re
from typing import Any

from bs4 import BeautifulSoup

from keyexport.exceptions import ParseError

WHITESPACE_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    """Plain text content of an HTML fragment with whitespace collapsed."""
    text = BeautifulSoup(html, "html.parser").get_text()
    return WHITESPACE_RE.sub(" ", text).strip()


def extract_script_json(html: str, element_id: str) -> Any:
    soup = BeautifulSoup(html, "html.parser")
    element = soup.find(id=element_id)
    if element is None:
        raise ParseError(f"Could not find #{element_id} in page")
    try:
        return json.loads(element.string or element.get_text())
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON in #{element_id}: {exc}") from exc
