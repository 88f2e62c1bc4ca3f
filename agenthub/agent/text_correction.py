"""
Text Correction — Fix typos and voice-recognition errors before matching.

Rules live in correction_rules.json and are applied in a fixed order:

1. spacing fixes (letter runs like "a p i", split compounds)
2. domain rules, only for domains whose keywords appear in the text
3. the generic misrecognition table

Homophones with several valid spellings are never auto-applied; they are
only offered through get_suggestions().

Usage:
    from agenthub.agent.text_correction import correct_text

    result = correct_text("what is the best bait for base fishing")
    result.corrected  # "what is the bass bait for bass fishing"
"""

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

RULES_PATH = Path(__file__).parent / "correction_rules.json"


@dataclass
class CorrectionRule:
    """A single ordered rewrite rule."""
    stage: str
    pattern: "re.Pattern[str]"
    replacement: str
    confidence: float
    label: str
    domain: str = ""

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


@dataclass
class ContextDomain:
    name: str
    keywords: List[str]
    rules: List[CorrectionRule]

    def detected_in(self, text: str) -> bool:
        lower = text.lower()
        return any(keyword in lower for keyword in self.keywords)


@dataclass
class Correction:
    original: str
    corrected: str
    confidence: float
    stage: str
    rule: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original": self.original,
            "corrected": self.corrected,
            "confidence": self.confidence,
            "stage": self.stage,
        }


@dataclass
class CorrectionResult:
    original: str
    corrected: str
    corrections: List[Correction] = field(default_factory=list)

    @property
    def has_major_corrections(self) -> bool:
        return any(c.confidence >= 0.8 for c in self.corrections)

    @property
    def changed(self) -> bool:
        return self.corrected != self.original

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correctedText": self.corrected,
            "corrections": [c.to_dict() for c in self.corrections],
            "hasMajorCorrections": self.has_major_corrections,
        }


@dataclass
class RuleSet:
    version: int
    spacing: List[CorrectionRule]
    domains: List[ContextDomain]
    generic: List[CorrectionRule]
    suggestions: Dict[str, List[str]]


def _phrase_pattern(phrase: str) -> "re.Pattern[str]":
    words = [re.escape(w) for w in phrase.split()]
    return re.compile(r"\b" + r"\s+".join(words) + r"\b", re.IGNORECASE)


def _build_rule(raw: Dict[str, Any], stage: str, default_confidence: float, domain: str = "") -> CorrectionRule:
    if "pattern" in raw:
        pattern = re.compile(raw["pattern"], re.IGNORECASE)
        label = raw.get("note") or raw["pattern"]
    else:
        pattern = _phrase_pattern(raw["phrase"])
        label = raw["phrase"]
    return CorrectionRule(
        stage=stage,
        pattern=pattern,
        replacement=raw["replacement"],
        confidence=float(raw.get("confidence", default_confidence)),
        label=label,
        domain=domain,
    )


def load_rules(path: Optional[Path] = None) -> RuleSet:
    """Load and compile a rule file."""
    path = path or RULES_PATH
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    stages = data.get("stages", {})
    spacing_cfg = stages.get("spacing", {})
    context_cfg = stages.get("context", {})
    generic_cfg = stages.get("generic", {})

    spacing = [
        _build_rule(r, "spacing", spacing_cfg.get("confidence", 0.9))
        for r in spacing_cfg.get("rules", [])
    ]
    domains = []
    for d in context_cfg.get("domains", []):
        domains.append(ContextDomain(
            name=d["name"],
            keywords=[k.lower() for k in d.get("keywords", [])],
            rules=[
                _build_rule(r, "context", context_cfg.get("confidence", 0.85), domain=d["name"])
                for r in d.get("rules", [])
            ],
        ))
    generic = [
        _build_rule(r, "generic", generic_cfg.get("confidence", 0.7))
        for r in generic_cfg.get("rules", [])
    ]

    rule_set = RuleSet(
        version=int(data.get("version", 1)),
        spacing=spacing,
        domains=domains,
        generic=generic,
        suggestions={k.lower(): list(v) for k, v in data.get("suggestions", {}).items()},
    )
    logger.debug(
        "[CORRECTION] Loaded rules v%d: %d spacing, %d domains, %d generic",
        rule_set.version, len(spacing), len(domains), len(generic),
    )
    return rule_set


@lru_cache()
def get_rules() -> RuleSet:
    return load_rules()


def detect_domains(text: str, rules: Optional[RuleSet] = None) -> List[str]:
    rules = rules or get_rules()
    return [d.name for d in rules.domains if d.detected_in(text)]


def _apply_rule(rule: CorrectionRule, text: str, corrections: List[Correction]) -> str:
    match = rule.pattern.search(text)
    if not match:
        return text
    new_text = rule.apply(text)
    if new_text != text:
        corrections.append(Correction(
            original=match.group(0),
            corrected=rule.pattern.sub(rule.replacement, match.group(0)),
            confidence=rule.confidence,
            stage=rule.stage,
            rule=rule.label,
        ))
    return new_text


def correct_text(text: str, rules: Optional[RuleSet] = None) -> CorrectionResult:
    """Run every stage over `text` and record what changed."""
    rules = rules or get_rules()
    if not text:
        return CorrectionResult(original=text or "", corrected=text or "")

    corrections: List[Correction] = []
    current = text

    for rule in rules.spacing:
        current = _apply_rule(rule, current, corrections)

    # Domains are detected on the spacing-fixed text
    active = [d for d in rules.domains if d.detected_in(current)]
    for domain in active:
        for rule in domain.rules:
            current = _apply_rule(rule, current, corrections)

    for rule in rules.generic:
        current = _apply_rule(rule, current, corrections)

    if corrections:
        logger.debug("[CORRECTION] %d correction(s): %r -> %r", len(corrections), text, current)
    return CorrectionResult(original=text, corrected=current, corrections=corrections)


def smart_correct(text: str, min_confidence: float = 0.7, rules: Optional[RuleSet] = None) -> str:
    """Corrected text if any correction reaches `min_confidence`, else the input."""
    result = correct_text(text, rules)
    if not any(c.confidence >= min_confidence for c in result.corrections):
        return text
    return result.corrected


def get_suggestions(text: str, rules: Optional[RuleSet] = None) -> List[Dict[str, Any]]:
    """Alternative spellings for ambiguous words, without applying them."""
    rules = rules or get_rules()
    suggestions = []
    for word in text.lower().split():
        word = word.strip(".,!?;:\"'")
        if word in rules.suggestions:
            suggestions.append({"original": word, "suggestions": rules.suggestions[word]})
    return suggestions


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]
