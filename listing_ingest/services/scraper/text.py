"""
Text renderings of scraped content for the extraction model.

extract_structured_text turns HTML into light markdown (headings, paragraphs,
bullets). format_structured_json_to_text turns structured-scraper JSON into
indented "Field Name: value" lines so both source types share one prompt.
"""
import re
from typing import Any

from bs4 import BeautifulSoup, Tag

_CONTAINER_TAGS = frozenset({"div", "section", "article", "main"})
_SKIPPED_TAGS = frozenset({"script", "style"})
_HEADING_RE = re.compile(r"^h([1-6])$")

_SKIPPED_TOP_LEVEL_KEYS = frozenset({"__typename", "url", "loadedUrl", "requestId", "requestQueueId"})
_MONEY_KEY_HINTS = ("price", "fee", "tax")


def extract_structured_text(html: str) -> str:
    """Render HTML as markdown-ish text, keeping headings and list structure."""
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    lines: list[str] = []

    def child_tags(element: Tag) -> list[Tag]:
        return [c for c in element.children if isinstance(c, Tag)]

    def process(element: Tag) -> None:
        name = (element.name or "").lower()
        if name in _SKIPPED_TAGS:
            return

        heading = _HEADING_RE.match(name)
        if heading:
            text = element.get_text().strip()
            if text:
                lines.extend(["", "#" * int(heading.group(1)) + " " + text, ""])
            return

        if name == "p":
            text = element.get_text().strip()
            if len(text) > 10:
                lines.extend([text, ""])
            return

        if name in ("ul", "ol"):
            items = [li for li in child_tags(element) if li.name == "li"]
            for i, li in enumerate(items):
                text = li.get_text().strip()
                if text:
                    prefix = "• " if name == "ul" else f"{i + 1}. "
                    lines.append(prefix + text)
            lines.append("")
            return

        children = child_tags(element)
        if name in _CONTAINER_TAGS or children:
            for child in children:
                process(child)
            return

        text = element.get_text().strip()
        if len(text) > 3 and not (lines and text in lines[-1]):
            lines.append(text)

    for child in child_tags(soup):
        process(child)

    text = "\n".join(line.rstrip() for line in lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def format_field_name(key: str) -> str:
    """camelCase / snake_case key -> "Title Case" words."""
    spaced = re.sub(r"([A-Z])", r" \1", key).replace("_", " ")
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split(" ") if word).strip()


def _format_number(value) -> str:
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def _format_value(value: Any, key: str):
    if _is_empty(value):
        return None
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (int, float)):
        if any(hint in key.lower() for hint in _MONEY_KEY_HINTS):
            return f"${_format_number(value)}"
        return _format_number(value)
    if isinstance(value, str):
        return value
    return None


def _format_array(values: list, key: str, indent: str, depth: int) -> list[str]:
    lines = [f"{indent}{format_field_name(key)}: ({len(values)} items)"]
    for idx, item in enumerate(values):
        if isinstance(item, (dict, list)):
            lines.append(f"{indent}  {idx + 1}.")
            if isinstance(item, dict):
                lines.extend(_format_object(item, depth + 2))
        else:
            formatted = _format_value(item, key)
            if formatted:
                lines.append(f"{indent}  - {formatted}")
    return lines


def _format_object(obj: dict, depth: int) -> list[str]:
    indent = "  " * depth
    lines: list[str] = []
    for key, value in obj.items():
        if _is_empty(value):
            continue
        if isinstance(value, dict):
            lines.append(f"{indent}{format_field_name(key)}:")
            lines.extend(_format_object(value, depth + 1))
        elif isinstance(value, list):
            lines.extend(_format_array(value, key, indent, depth))
        else:
            formatted = _format_value(value, key)
            if formatted:
                lines.append(f"{indent}{format_field_name(key)}: {formatted}")
    return lines


def _format_item(item: Any, lines: list[str]) -> None:
    if not isinstance(item, dict):
        return
    for key, value in item.items():
        if _is_empty(value) or key in _SKIPPED_TOP_LEVEL_KEYS:
            continue
        if isinstance(value, dict):
            lines.extend(["", f"{format_field_name(key)}:"])
            lines.extend(_format_object(value, 1))
        elif isinstance(value, list):
            lines.append("")
            lines.extend(_format_array(value, key, "", 0))
        else:
            formatted = _format_value(value, key)
            if formatted:
                lines.append(f"{format_field_name(key)}: {formatted}")


def format_structured_json_to_text(data: Any) -> str:
    """Readable text for one listing object or a list of them."""
    if not data:
        return ""

    items = data if isinstance(data, list) else [data]
    lines: list[str] = []
    for index, item in enumerate(items):
        if index > 0:
            lines.extend(["", f"--- Property {index + 1} ---", ""])
        _format_item(item, lines)
    return "\n".join(lines)
