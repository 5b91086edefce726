"""
Tests for opposite-corner pairing.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from clinkcode.config import CornerType  # type: ignore
from clinkcode.pairing import (  # type: ignore
    OppositeTagPair,
    compatible_pairs,
    find_opposite_corner_tags,
    generate_opposite_tag_pairs,
    orientation_mismatch,
)
from clinkcode.synthetic import make_tag  # type: ignore

CW = CornerType.CODE_3PART_CW
CCW = CornerType.CODE_3PART_CCW


class TestOppositeCornerSearch(unittest.TestCase):
    """Anti-parallel orientation test."""

    def test_exact_opposites_accepted(self):
        a = make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0)
        b = make_tag(CW, (100.0, 100.0), (0.0, -10.0), 1)
        self.assertEqual(orientation_mismatch(a, b), 0.0)
        self.assertEqual(find_opposite_corner_tags(a, [b]), [b])

    def test_parallel_rejected(self):
        a = make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0)
        b = make_tag(CW, (100.0, 100.0), (0.0, 10.0), 1)
        self.assertEqual(find_opposite_corner_tags(a, [b]), [])

    def test_perpendicular_rejected(self):
        a = make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0)
        b = make_tag(CW, (100.0, 100.0), (-10.0, 0.0), 1)
        self.assertEqual(find_opposite_corner_tags(a, [b]), [])

    def test_same_cell_never_pairs(self):
        a = make_tag(CW, (0.0, 0.0), (0.0, 10.0), 3)
        b = make_tag(CW, (5.0, 5.0), (0.0, -10.0), 3)
        self.assertEqual(find_opposite_corner_tags(a, [b]), [])

    def test_threshold_uses_first_tag_magnitude(self):
        # mismatch 6 against thresholds 9/1.5 = 6 (strict) and 12/1.5 = 8
        a = make_tag(CW, (0.0, 0.0), (0.0, 9.0), 0)
        b = make_tag(CW, (0.0, 50.0), (6.0, -9.0), 1)
        self.assertEqual(find_opposite_corner_tags(a, [b]), [])
        c = make_tag(CW, (0.0, 0.0), (0.0, 12.0), 2)
        d = make_tag(CW, (0.0, 50.0), (6.0, -12.0), 3)
        self.assertEqual(find_opposite_corner_tags(c, [d]), [d])

    def test_best_match_first(self):
        a = make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0)
        rough = make_tag(CW, (90.0, 90.0), (3.0, -10.0), 1)
        exact = make_tag(CW, (100.0, 100.0), (0.0, -10.0), 2)
        close = make_tag(CW, (95.0, 95.0), (1.0, -10.0), 3)
        self.assertEqual(find_opposite_corner_tags(a, [rough, exact, close]), [exact, close, rough])

    def test_start_at_skips_earlier_tags(self):
        a = make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0)
        b = make_tag(CW, (100.0, 100.0), (0.0, -10.0), 1)
        self.assertEqual(find_opposite_corner_tags(a, [a, b], start_at=2), [])


class TestPairGeneration(unittest.TestCase):
    """Pair sets and CW/CCW compatibility."""

    def test_each_unordered_pair_once(self):
        tags = [
            make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0),
            make_tag(CW, (100.0, 100.0), (0.0, -10.0), 1),
            make_tag(CW, (300.0, 300.0), (0.0, -10.0), 2),
        ]
        pairs = generate_opposite_tag_pairs(tags)
        self.assertEqual(
            [(p.tag_a.cell_index, p.tag_b.cell_index) for p in pairs],
            [(0, 1), (0, 2)],
        )

    def test_pair_geometry(self):
        pair = OppositeTagPair(
            make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0),
            make_tag(CW, (60.0, 80.0), (0.0, -10.0), 1),
        )
        self.assertEqual(pair.center_xy, (30.0, 40.0))
        self.assertAlmostEqual(pair.separation, 100.0)

    def test_compatible_when_midpoints_coincide(self):
        cw = OppositeTagPair(
            make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0),
            make_tag(CW, (100.0, 100.0), (0.0, -10.0), 1),
        )
        ccw = OppositeTagPair(
            make_tag(CCW, (100.0, 0.0), (-10.0, 0.0), 2),
            make_tag(CCW, (0.0, 100.0), (10.0, 0.0), 3),
        )
        self.assertTrue(cw.is_compatible(ccw))
        self.assertTrue(ccw.is_compatible(cw))
        self.assertEqual(compatible_pairs([cw], [ccw]), [(cw, ccw)])

    def test_incompatible_when_midpoints_far_apart(self):
        cw = OppositeTagPair(
            make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0),
            make_tag(CW, (100.0, 100.0), (0.0, -10.0), 1),
        )
        ccw = OppositeTagPair(
            make_tag(CCW, (500.0, 0.0), (-10.0, 0.0), 2),
            make_tag(CCW, (400.0, 100.0), (10.0, 0.0), 3),
        )
        self.assertFalse(cw.is_compatible(ccw))
        self.assertEqual(compatible_pairs([cw], [ccw]), [])

    def test_small_pair_limits_compatibility(self):
        big = OppositeTagPair(
            make_tag(CW, (0.0, 0.0), (0.0, 10.0), 0),
            make_tag(CW, (200.0, 200.0), (0.0, -10.0), 1),
        )
        small = OppositeTagPair(
            make_tag(CCW, (110.0, 90.0), (-10.0, 0.0), 2),
            make_tag(CCW, (110.0, 110.0), (10.0, 0.0), 3),
        )
        # midpoints exactly half the smaller separation apart
        self.assertFalse(big.is_compatible(small))


if __name__ == "__main__":
    unittest.main()
