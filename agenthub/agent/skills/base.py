"""
Skill data types shared by the parser, matcher and suggester.

A skill document is a small front-matter block followed by Markdown:

    ---
    name: european-weather
    description: Weather patterns and forecasts for European cities
    version: 1.0.0
    dependencies: geography, units
    ---

    # European Weather

    ## Overview
    ...

    ## Core Capabilities
    - Seasonal climate summaries

    ## Guidelines
    ✅ DO:
    - Give both Celsius and Fahrenheit

    ❌ DON'T:
    - Invent live forecasts

    ## Examples
    - "What's Madrid like in July?"

    ## Resources
    - Met Office climate tables
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SkillMeta:
    """Front-matter of a skill document."""
    name: str = ""
    description: str = ""
    version: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    extra: Dict[str, str] = field(default_factory=dict)  # Any other key: value pairs


@dataclass
class ParsedSkill:
    """A skill document split into its sections. Missing sections are empty."""
    metadata: SkillMeta = field(default_factory=SkillMeta)
    overview: str = ""
    capabilities: List[str] = field(default_factory=list)
    dos: List[str] = field(default_factory=list)
    donts: List[str] = field(default_factory=list)
    examples: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    raw_content: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": {
                "name": self.metadata.name,
                "description": self.metadata.description,
                "version": self.metadata.version,
                "dependencies": self.metadata.dependencies,
            },
            "content": {
                "overview": self.overview,
                "capabilities": self.capabilities,
                "guidelines": {"dos": self.dos, "donts": self.donts},
                "examples": self.examples,
                "resources": self.resources,
            },
        }


@dataclass
class SkillMatch:
    """A skill selected for a message, with a 0-100 relevance score."""
    skill: Any  # agenthub.db.models.Skill or any object with name/description/tags/skill_content
    relevance_score: int
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skillId": getattr(self.skill, "id", None),
            "skillName": self.skill.name,
            "relevanceScore": self.relevance_score,
            "reasoning": self.reasoning,
        }
