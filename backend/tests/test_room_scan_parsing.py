"""Tests for room scan output parsing.

Covers:
- json_tools.parse_loose_json strategy chain
- contracts: clamping, candidate validation, boxes and explanations
"""

import unittest

from pydantic import ValidationError

from app.services.ai.common.json_tools import parse_loose_json
from app.services.ai.room_scan.contracts import MAX_LABEL_CHARS, CandidateItem, candidates_from_payload, clamp01


class ParseLooseJsonTests(unittest.TestCase):
    def test_strict_object(self):
        result = parse_loose_json('{"items": [{"label": "Sofa"}]}')
        self.assertEqual(result, {"items": [{"label": "Sofa"}]})

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"items": [{"label": "TV"}]}\n```\nThanks!'
        self.assertEqual(parse_loose_json(text)["items"][0]["label"], "TV")

    def test_fenced_block_without_language(self):
        text = '```\n{"items": []}\n```'
        self.assertEqual(parse_loose_json(text), {"items": []})

    def test_object_embedded_in_prose(self):
        text = 'Sure. {"items": [{"label": "Lamp", "confidence": 0.5}]} Hope this helps.'
        self.assertEqual(parse_loose_json(text)["items"][0]["label"], "Lamp")

    def test_bare_array_is_wrapped(self):
        text = 'Items: [{"label": "Desk"}, {"label": "Chair"}]'
        self.assertEqual(parse_loose_json(text), {"items": [{"label": "Desk"}, {"label": "Chair"}]})

    def test_empty_and_none_return_none(self):
        self.assertIsNone(parse_loose_json(""))
        self.assertIsNone(parse_loose_json("   "))
        self.assertIsNone(parse_loose_json(None))

    def test_garbage_returns_none(self):
        self.assertIsNone(parse_loose_json("I could not see anything useful {oops"))

    def test_truncated_json_returns_none(self):
        self.assertIsNone(parse_loose_json('{"items": [{"label": "Sofa", "confid'))

    def test_deeply_nested_output_returns_none(self):
        self.assertIsNone(parse_loose_json("[" * 5000 + "]" * 5000))
        self.assertIsNone(parse_loose_json('{"items": ' + "[" * 5000 + "]" * 5000 + "}"))

    def test_strict_top_level_array_is_not_wrapped(self):
        result = parse_loose_json('[{"label": "Desk"}]')
        self.assertEqual(result, [{"label": "Desk"}])
        self.assertEqual(candidates_from_payload(result), [])


class ClampTests(unittest.TestCase):
    def test_in_range_values_pass_through(self):
        self.assertEqual(clamp01(0.4), 0.4)
        self.assertEqual(clamp01("0.7"), 0.7)

    def test_out_of_range_values_are_clamped(self):
        self.assertEqual(clamp01(1.7), 1.0)
        self.assertEqual(clamp01(-3), 0.0)

    def test_non_numeric_is_none(self):
        self.assertIsNone(clamp01("high"))
        self.assertIsNone(clamp01(None))
        self.assertIsNone(clamp01(True))
        self.assertIsNone(clamp01(float("nan")))


class CandidateContractTests(unittest.TestCase):
    def test_empty_label_rejected(self):
        with self.assertRaises(ValidationError):
            CandidateItem(label="")

    def test_confidence_out_of_range_rejected(self):
        with self.assertRaises(ValidationError):
            CandidateItem(label="Sofa", confidence=1.5)

    def test_payload_items_are_normalised(self):
        payload = {
            "items": [
                {"label": "  Sofa ", "category": "furniture", "confidence": 1.4},
                {"label": "", "confidence": 0.9},
                {"label": "TV", "confidence": "n/a"},
                "not-an-item",
            ]
        }
        items = candidates_from_payload(payload)
        self.assertEqual([i.label for i in items], ["Sofa", "TV"])
        self.assertEqual(items[0].confidence, 1.0)
        self.assertEqual(items[0].category, "furniture")
        self.assertIsNone(items[1].confidence)

    def test_long_labels_are_cut_to_max_length(self):
        payload = {"items": [{"label": "x" * 199 + " " + "y" * 50}, {"label": "z" * 500}]}
        first, second = candidates_from_payload(payload)
        self.assertEqual(first.label, "x" * 199)
        self.assertEqual(len(second.label), MAX_LABEL_CHARS)

    def test_items_given_as_mapping(self):
        payload = {"items": {"a": {"label": "Desk"}, "b": {"label": "Chair"}}}
        self.assertEqual([i.label for i in candidates_from_payload(payload)], ["Desk", "Chair"])

    def test_non_dict_payload_yields_nothing(self):
        self.assertEqual(candidates_from_payload(None), [])
        self.assertEqual(candidates_from_payload([{"label": "Sofa"}]), [])
        self.assertEqual(candidates_from_payload({"items": "Sofa"}), [])

    def test_boxes_and_explanation(self):
        payload = {
            "items": [
                {
                    "label": "Sofa",
                    "boxes": [
                        {"imageIndex": 1, "x": 0.1, "y": 0.2, "w": 1.3, "h": 0.4, "confidence": 0.8},
                        {"imageIndex": -1, "x": 0.1, "y": 0.2, "w": 0.3, "h": 0.4},
                        {"image_index": 0, "x": "left", "y": 0.2, "w": 0.3, "h": 0.4},
                    ],
                    "explanation": {
                        "tier": "high",
                        "why": ["cushions", "armrests", "legs", "fabric"],
                        "agreement": "multi_image",
                    },
                }
            ]
        }
        (item,) = candidates_from_payload(payload)
        self.assertEqual(len(item.boxes), 1)
        self.assertEqual(item.boxes[0].image_index, 1)
        self.assertEqual(item.boxes[0].w, 1.0)
        self.assertEqual(item.explanation.tier, "HIGH")
        self.assertEqual(item.explanation.agreement, "MULTI_IMAGE")
        self.assertEqual(len(item.explanation.why), 3)


if __name__ == "__main__":
    unittest.main()
