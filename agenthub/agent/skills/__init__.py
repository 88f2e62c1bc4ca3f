"""AgentHub skill documents: parsing, matching and suggestion."""

from agenthub.agent.skills.base import ParsedSkill, SkillMatch, SkillMeta
from agenthub.agent.skills.parser import generate_skill_template, parse_skill_content
from agenthub.agent.skills.matcher import (
    build_system_prompt_with_skills,
    generate_skill,
    match_skills_to_message,
    prefilter_skills,
)
from agenthub.agent.skills.suggester import (
    SkillSuggestion,
    analyze_question_for_skill_gap,
    generate_skill_content,
    get_common_skills_for_domain,
    suggest_skills_for_agent,
)

__all__ = [
    "ParsedSkill",
    "SkillMatch",
    "SkillMeta",
    "SkillSuggestion",
    "parse_skill_content",
    "generate_skill_template",
    "prefilter_skills",
    "match_skills_to_message",
    "build_system_prompt_with_skills",
    "generate_skill",
    "suggest_skills_for_agent",
    "generate_skill_content",
    "analyze_question_for_skill_gap",
    "get_common_skills_for_domain",
]
