"""Frontmatter codec: a YAML metadata block followed by a free-text body.

Document layout:

    ---
    key: value
    tags: [a, b]
    ---

    body text

Parsing never raises. A missing or malformed block yields empty metadata
and the whole document as body. Serialization omits keys whose value is
None and renders lists of scalars in flow style so files stay diff-friendly.
"""

from __future__ import annotations

import logging
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DELIMITER = "---"


class _FrontmatterDumper(yaml.SafeDumper):
    """SafeDumper that keeps lists inline and mappings in block style."""


def _represent_list(dumper: yaml.SafeDumper, data: list) -> yaml.Node:
    return dumper.represent_sequence("tag:yaml.org,2002:seq", data, flow_style=True)


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    # Multi-line values stay on one line so no body line can pass for a delimiter
    style = '"' if "\n" in data or "\r" in data else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=style)


_FrontmatterDumper.add_representer(list, _represent_list)
_FrontmatterDumper.add_representer(tuple, _represent_list)
_FrontmatterDumper.add_representer(str, _represent_str)


def parse_frontmatter(raw: str) -> tuple[dict[str, Any], str]:
    """Split a document into (metadata, body).

    The body is trimmed of surrounding whitespace. Unknown keys are returned
    as-is; values keep whatever type YAML decodes them to.
    """
    lines = raw.split("\n")
    if not lines or lines[0].strip() != DELIMITER:
        return {}, raw

    end_index = -1
    for i in range(1, len(lines)):
        if lines[i].strip() == DELIMITER:
            end_index = i
            break

    if end_index == -1:
        return {}, raw

    block = "\n".join(lines[1:end_index])
    try:
        metadata = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as e:
        logger.debug(f"Unparseable frontmatter block: {e}")
        return {}, raw

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        return {}, raw

    body = "\n".join(lines[end_index + 1:]).strip()
    return metadata, body


def serialize_frontmatter(metadata: dict[str, Any], body: str) -> str:
    """Render metadata and body back into a document.

    Exact inverse of parse_frontmatter for any metadata without None values
    and any body without surrounding whitespace.
    """
    present = {k: v for k, v in metadata.items() if v is not None}
    block = ""
    if present:
        block = yaml.dump(
            present,
            Dumper=_FrontmatterDumper,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
            width=1_000_000,
        )

    body = body.strip()
    document = f"{DELIMITER}\n{block}{DELIMITER}\n"
    if body:
        document += f"\n{body}\n"
    return document
