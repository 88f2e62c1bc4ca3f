"""
Skill document parser.

parse_skill_content() never raises: any string (or None) yields a
ParsedSkill, with empty values for whatever could not be found.
"""

import re
from typing import Iterable, List, Optional

from agenthub.agent.skills.base import ParsedSkill, SkillMeta

FRONT_MATTER_RE = re.compile(r"^---\n(.*?)\n---\n?", re.DOTALL)
LIST_ITEM_RE = re.compile(r"^[-*]\s+(.+)$", re.MULTILINE)

OVERVIEW_HEADER = "## Overview"
CAPABILITIES_HEADER = "## Core Capabilities"
DO_MARKER = "✅ DO:"
DONT_MARKER = "❌ DON'T:"
EXAMPLES_HEADER = "## Examples"
RESOURCES_HEADER = "## Resources"

# A section runs until the next "## " header, checklist marker, or end of text
_SECTION_END = r"(?=\n## |\n" + re.escape(DO_MARKER) + r"|\n" + re.escape(DONT_MARKER) + r"|\Z)"


def _parse_front_matter(block: str) -> SkillMeta:
    values = {}
    for line in block.split("\n"):
        key, sep, value = line.partition(":")
        if sep and key.strip():
            values[key.strip()] = value.strip()

    dependencies = [
        d.strip() for d in values.pop("dependencies", "").split(",") if d.strip()
    ]
    return SkillMeta(
        name=values.pop("name", ""),
        description=values.pop("description", ""),
        version=values.pop("version", None) or None,
        dependencies=dependencies,
        extra=values,
    )


def extract_section(content: str, header: str) -> str:
    pattern = re.compile(re.escape(header) + r"[ \t]*\n(.*?)" + _SECTION_END, re.DOTALL | re.IGNORECASE)
    match = pattern.search(content)
    return match.group(1).strip() if match else ""


def extract_list_items(content: str, header: str) -> List[str]:
    section = extract_section(content, header)
    return [item.strip() for item in LIST_ITEM_RE.findall(section)]


def parse_skill_content(raw: Optional[str]) -> ParsedSkill:
    """Split a skill document into front-matter and sections."""
    if not isinstance(raw, str):
        raw = ""
    text = raw.replace("\r\n", "\n")

    match = FRONT_MATTER_RE.match(text)
    if match:
        metadata = _parse_front_matter(match.group(1))
        content = text[match.end():]
    else:
        metadata = SkillMeta()
        content = text

    return ParsedSkill(
        metadata=metadata,
        overview=extract_section(content, OVERVIEW_HEADER),
        capabilities=extract_list_items(content, CAPABILITIES_HEADER),
        dos=extract_list_items(content, DO_MARKER),
        donts=extract_list_items(content, DONT_MARKER),
        examples=extract_list_items(content, EXAMPLES_HEADER),
        resources=extract_list_items(content, RESOURCES_HEADER),
        raw_content=content,
    )


def _bullets(items: Iterable[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def generate_skill_template(
    name: str,
    description: str,
    version: str = "1.0.0",
    capabilities: Optional[List[str]] = None,
    dos: Optional[List[str]] = None,
    donts: Optional[List[str]] = None,
    examples: Optional[List[str]] = None,
    resources: Optional[List[str]] = None,
    overview: str = "",
) -> str:
    """Render a skill document that parse_skill_content() reads back section for section."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "skill"
    return f"""---
name: {slug}
description: {description}
version: {version}
---

# {name}

{OVERVIEW_HEADER}
{overview or description}

{CAPABILITIES_HEADER}
{_bullets(capabilities or [f"Answer questions about {name.lower()}", "Explain key concepts clearly"])}

## Guidelines
{DO_MARKER}
{_bullets(dos or ["Give specific, practical answers", "Say when something is outside this skill"])}

{DONT_MARKER}
{_bullets(donts or ["Guess when unsure", "Overload answers with jargon"])}

{EXAMPLES_HEADER}
{_bullets(examples or [f"Questions about {name.lower()}"])}

{RESOURCES_HEADER}
{_bullets(resources or [])}
"""
