"""
Text correction tests: spacing fixes, context rules, generic table and
homophone suggestions.
"""

import json
import tempfile
import unittest
from pathlib import Path


class TestCorrectText(unittest.TestCase):

    def test_fishing_context(self):
        from agenthub.agent.text_correction import correct_text
        result = correct_text("what is the best bait for base fishing")
        self.assertEqual(result.corrected, "what is the bass bait for bass fishing")
        self.assertTrue(result.changed)
        self.assertTrue(result.has_major_corrections)

    def test_base_untouched_outside_fishing(self):
        from agenthub.agent.text_correction import correct_text
        result = correct_text("how do I set up a database with a strong base")
        self.assertIn("strong base", result.corrected)

    def test_spelled_out_letters_are_joined(self):
        from agenthub.agent.text_correction import correct_text
        result = correct_text("how do I call the r e s t endpoint")
        self.assertEqual(result.corrected, "how do I call the rest endpoint")

    def test_data_domain(self):
        from agenthub.agent.text_correction import correct_text
        result = correct_text("build a dashboard in power be i")
        self.assertEqual(result.corrected, "build a dashboard in power bi")
        self.assertEqual(result.corrections[0].stage, "context")

    def test_generic_rules_apply_without_domain(self):
        from agenthub.agent.text_correction import correct_text
        result = correct_text("should I learn my sequel")
        self.assertEqual(result.corrected, "should I learn mysql")
        self.assertEqual(result.corrections[-1].stage, "generic")
        self.assertFalse(result.has_major_corrections)

    def test_clean_text_unchanged(self):
        from agenthub.agent.text_correction import correct_text
        result = correct_text("Explain photosynthesis please")
        self.assertFalse(result.changed)
        self.assertEqual(result.corrections, [])

    def test_empty_text(self):
        from agenthub.agent.text_correction import correct_text
        self.assertEqual(correct_text("").corrected, "")

    def test_homophones_never_auto_applied(self):
        from agenthub.agent.text_correction import correct_text
        text = "their going to write there report"
        self.assertEqual(correct_text(text).corrected, text)

    def test_to_dict(self):
        from agenthub.agent.text_correction import correct_text
        data = correct_text("build a dashboard in tablo").to_dict()
        self.assertEqual(data["correctedText"], "build a dashboard in tableau")
        self.assertEqual(data["corrections"][0]["original"], "tablo")


class TestSuggestionsAndHelpers(unittest.TestCase):

    def test_get_suggestions(self):
        from agenthub.agent.text_correction import get_suggestions
        suggestions = get_suggestions("Is there a problem?")
        self.assertEqual(suggestions[0]["original"], "there")
        self.assertIn("their", suggestions[0]["suggestions"])

    def test_smart_correct_threshold(self):
        from agenthub.agent.text_correction import smart_correct
        text = "should I learn my sequel"
        self.assertEqual(smart_correct(text, min_confidence=0.9), text)
        self.assertEqual(smart_correct(text, min_confidence=0.7), "should I learn mysql")

    def test_detect_domains(self):
        from agenthub.agent.text_correction import detect_domains
        self.assertEqual(detect_domains("fishing on the lake"), ["fishing"])
        self.assertEqual(detect_domains("nothing relevant"), [])

    def test_levenshtein(self):
        from agenthub.agent.text_correction import levenshtein_distance
        self.assertEqual(levenshtein_distance("kitten", "sitting"), 3)
        self.assertEqual(levenshtein_distance("", "abc"), 3)
        self.assertEqual(levenshtein_distance("same", "same"), 0)

    def test_custom_rule_file(self):
        from agenthub.agent.text_correction import correct_text, load_rules
        data = {
            "version": 7,
            "stages": {
                "generic": {"confidence": 0.5, "rules": [{"phrase": "colour", "replacement": "color"}]},
            },
        }
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "rules.json"
            path.write_text(json.dumps(data), encoding="utf-8")
            rules = load_rules(path)
        self.assertEqual(rules.version, 7)
        result = correct_text("my favourite colour", rules)
        self.assertEqual(result.corrected, "my favourite color")
        self.assertEqual(result.corrections[0].confidence, 0.5)


if __name__ == "__main__":
    unittest.main()
