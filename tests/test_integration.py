"""
Integration tests for the ClinkCode frame pipeline.

Synthesizes full frames plus the matching aggregate buffers and runs them
through extraction, pairing and decoding.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Tuple
from unittest import mock

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from clinkcode.config import ClinkConfiguration, CornerType
from clinkcode.decoder import ClinkDecoder
from clinkcode.main import main
from clinkcode.pixels import PixelBuffer
from clinkcode.synthetic import (
    blank_frame,
    build_aggregate,
    cell_index_for,
    find_code,
    grid_bits,
    make_corner_tags,
    make_tag,
    render_marker,
    synthesize_frame,
)

LOGGER = logging.getLogger(__name__)

Corners = Tuple[Tuple[float, float], ...]

UPRIGHT: Corners = ((400.0, 300.0), (700.0, 300.0), (400.0, 600.0), (700.0, 600.0))
# same square as seen after a half turn: true top-left is lower right in the image
UPSIDE_DOWN: Corners = ((700.0, 600.0), (400.0, 600.0), (700.0, 300.0), (400.0, 300.0))
TILTED: Corners = ((1210.0, 180.0), (1530.0, 250.0), (1150.0, 490.0), (1470.0, 560.0))
DIAMOND: Corners = ((1350.0, 208.0), (1562.0, 420.0), (1138.0, 420.0), (1350.0, 632.0))


class MarkerScene:
    """Frame and aggregate buffer holding one or more synthetic markers."""

    def __init__(self, config: Optional[ClinkConfiguration] = None):
        self.config = config or ClinkConfiguration()
        self.frame = blank_frame(self.config.frame_width, self.config.frame_height)
        self.tags = []

    def add_marker(self, code: int, corners: Corners, diagonal: int = 28) -> "MarkerScene":
        render_marker(self.frame, corners, grid_bits(code, diagonal, self.config.code_grid_size))
        self.tags.extend(make_corner_tags(corners, self.config))
        return self

    @property
    def aggregate(self) -> np.ndarray:
        return build_aggregate(self.tags, self.config)

    @property
    def pixels(self) -> PixelBuffer:
        return PixelBuffer.from_config(self.frame, self.config)


@pytest.fixture(scope="module")
def code() -> int:
    return find_code(28)


@pytest.fixture
def decoder() -> ClinkDecoder:
    return ClinkDecoder()


class TestFramePipeline:
    """Aggregate buffer and pixels in, decoded markers out."""

    def test_upright_marker(self, decoder, code):
        scene = MarkerScene().add_marker(code, UPRIGHT)
        result = decoder.decode_frame(scene.aggregate, scene.pixels)

        assert result.code_possible
        assert result.candidate_count == 1
        assert [c.code for c in result.codes] == [code]
        cx, cy = result.codes[0].center
        assert cx == pytest.approx(550.0)
        assert cy == pytest.approx(450.0)
        assert result.tag_counts == {"CODE_3PART_CW": 2, "CODE_3PART_CCW": 2}

    def test_upside_down_marker(self, decoder, code):
        scene = MarkerScene().add_marker(code, UPSIDE_DOWN)
        result = decoder.decode_frame(scene.aggregate, scene.pixels)

        assert [c.code for c in result.codes] == [code]
        clinkcode = result.codes[0]
        assert clinkcode.top_left.xy == UPSIDE_DOWN[0]
        assert clinkcode.bottom_right.xy == UPSIDE_DOWN[3]
        assert clinkcode.center == pytest.approx((550.0, 450.0))

    def test_tilted_marker(self, decoder, code):
        scene = MarkerScene().add_marker(code, TILTED)
        result = decoder.decode_frame(scene.aggregate, scene.pixels)
        assert [c.code for c in result.codes] == [code]

    def test_two_markers_in_one_frame(self, decoder, code):
        other = find_code(49)
        scene = MarkerScene().add_marker(code, UPRIGHT).add_marker(other, DIAMOND, diagonal=49)
        result = decoder.decode_frame(scene.aggregate, scene.pixels)
        assert result.candidate_count == 2
        assert sorted(c.code for c in result.codes) == sorted([code, other])

    def test_corrupted_payload_yields_nothing(self, decoder, code):
        scene = MarkerScene().add_marker(code, UPRIGHT)
        # paint over one payload cell, (x=0, y=1), with its opposite value
        bits = grid_bits(code, 28)
        bits[1, 0] ^= 1
        render_marker(scene.frame, UPRIGHT, bits)
        result = decoder.decode_frame(scene.aggregate, scene.pixels)
        assert all(c.code != code for c in result.codes)

    def test_blank_pixels_yield_no_codes(self, decoder, code):
        scene = MarkerScene()
        scene.tags.extend(make_corner_tags(UPRIGHT, scene.config))
        result = decoder.decode_frame(scene.aggregate, scene.pixels)
        assert result.candidate_count == 1
        assert result.codes == []

    def test_zero_presence_counters_skip_extraction(self, decoder, code):
        scene = MarkerScene().add_marker(code, UPRIGHT)
        aggregate = scene.aggregate
        aggregate[:scene.config.num_tag_types] = 0

        with mock.patch("clinkcode.decoder.extract_tags_by_type") as extract:
            result = decoder.decode_frame(aggregate, scene.pixels)

        extract.assert_not_called()
        assert result.codes == []
        assert not result.code_possible
        assert not result.found

    def test_single_code_tag_type_skips_pairing(self, decoder, code):
        scene = MarkerScene().add_marker(code, UPRIGHT)
        scene.tags = [t for t in scene.tags if t.type == CornerType.CODE_3PART_CW]
        aggregate = scene.aggregate
        aggregate[CornerType.CODE_3PART_CCW] = 5
        result = decoder.decode_frame(aggregate, scene.pixels)
        assert result.candidate_count == 0
        assert result.codes == []

    def test_board_presence_reported(self, decoder):
        config = ClinkConfiguration()
        positions = [(100.0, 100.0), (300.0, 100.0), (100.0, 300.0), (300.0, 300.0)]
        board_types = [
            CornerType.BOARD_3PART_CW,
            CornerType.BOARD_3PART_CCW,
            CornerType.BOARD_4PART_RR,
            CornerType.BOARD_4PART_BB,
        ]
        tags = [
            make_tag(t, xy, (1.0, 0.0), cell_index_for(xy[0], xy[1], config))
            for t, xy in zip(board_types, positions)
        ]
        scene = MarkerScene(config)
        scene.tags = tags
        result = decoder.decode_frame(scene.aggregate, scene.pixels)
        assert result.board_detected
        assert not result.code_possible
        assert result.codes == []

    def test_frame_is_writable_after_decode(self, decoder, code):
        scene = MarkerScene().add_marker(code, UPRIGHT)
        decoder.decode_frame(scene.aggregate, scene.pixels)
        scene.frame[0, 0, 0] = 1
        assert scene.frame[0, 0, 0] == 1

    def test_decode_tags_bypasses_aggregate(self, decoder, code):
        scene = MarkerScene().add_marker(code, UPRIGHT)
        codes = decoder.decode_tags(scene.tags, scene.pixels)
        assert [c.code for c in codes] == [code]

    def test_synthesize_frame_rejects_unlisted_checksum(self):
        bad = 1  # checksum 37 is not a valid diagonal
        with pytest.raises(ValueError):
            synthesize_frame(bad, UPRIGHT)


class TestSmallGrid:
    """Non-default configuration flows through every stage."""

    def test_custom_grid_and_frame(self, code):
        config = ClinkConfiguration(
            grid_divisions_x=8,
            grid_divisions_y=6,
            frame_width=640,
            frame_height=480,
        )
        corners = ((100.0, 100.0), (400.0, 120.0), (90.0, 400.0), (420.0, 410.0))
        frame, aggregate = synthesize_frame(code, corners, config)
        assert aggregate.shape == (config.aggregate_size,)

        decoder = ClinkDecoder(config.to_dict())
        result = decoder.decode_frame(aggregate, PixelBuffer.from_config(frame, config))
        assert [c.code for c in result.codes] == [code]

    def test_mismatched_grid_yields_no_codes(self, code):
        frame, aggregate = synthesize_frame(code, UPRIGHT)
        config = ClinkConfiguration(grid_resolution=2)
        decoder = ClinkDecoder(config)
        result = decoder.decode_frame(aggregate, PixelBuffer.from_config(frame, config))
        assert result.codes == []


class TestCommandLine:
    """The ``clinkcode`` entry point."""

    def test_demo_mode(self, capsys, code):
        assert main(["--demo"]) == 0
        out = capsys.readouterr().out
        assert f"ClinkCode {code} at" in out

    def test_demo_mode_with_explicit_code(self, capsys):
        other = find_code(59)
        assert main(["--demo", "--code", str(other)]) == 0
        assert f"ClinkCode {other} at" in capsys.readouterr().out

    def test_demo_rejects_code_wider_than_grid(self, capsys, code):
        assert main(["--demo", "--code", str(code + (1 << 24))]) == 1
        assert "ClinkCode" not in capsys.readouterr().out

    def test_files_round_trip(self, tmp_path, capsys, code):
        import cv2

        frame, aggregate = synthesize_frame(code, UPRIGHT)
        image_path = tmp_path / "frame.png"
        aggregate_path = tmp_path / "cells.npy"
        cv2.imwrite(str(image_path), cv2.cvtColor(frame, cv2.COLOR_RGBA2BGR))
        np.save(aggregate_path, aggregate)

        assert main(["--image", str(image_path), "--aggregate", str(aggregate_path)]) == 0
        assert f"ClinkCode {code} at" in capsys.readouterr().out

    def test_missing_inputs(self, tmp_path):
        assert main([]) == 1
        assert main(["--image", str(tmp_path / "none.png"), "--aggregate", str(tmp_path / "none.npy")]) == 1
