import pytest

from vnetkit.replaydetector import (
    FixedBigInt,
    SlidingWindowDetector,
    WrappedSlidingWindowDetector,
    new,
    with_wrap,
)


def test_fixed_big_int_example():
    bi = FixedBigInt(224)
    out = []

    bi.set_bit(0)
    out.append(str(bi))
    bi.lsh(1)
    out.append(str(bi))
    bi.lsh(0)
    out.append(str(bi))
    bi.set_bit(10)
    out.append(str(bi))
    bi.lsh(20)
    out.append(str(bi))
    bi.set_bit(80)
    out.append(str(bi))
    bi.lsh(4)
    out.append(str(bi))
    bi.set_bit(130)
    out.append(str(bi))
    bi.lsh(64)
    out.append(str(bi))
    bi.set_bit(7)
    out.append(str(bi))
    bi.lsh(129)
    out.append(str(bi))
    for _ in range(256):
        bi.lsh(1)
        bi.set_bit(0)
    out.append(str(bi))

    assert out == [
        "0000000000000000000000000000000000000000000000000000000000000001",
        "0000000000000000000000000000000000000000000000000000000000000002",
        "0000000000000000000000000000000000000000000000000000000000000002",
        "0000000000000000000000000000000000000000000000000000000000000402",
        "0000000000000000000000000000000000000000000000000000000040200000",
        "0000000000000000000000000000000000000000000100000000000040200000",
        "0000000000000000000000000000000000000000001000000000000402000000",
        "0000000000000000000000000000000400000000001000000000000402000000",
        "0000000000000004000000000010000000000004020000000000000000000000",
        "0000000000000004000000000010000000000004020000000000000000000080",
        "0000000004000000000000000000010000000000000000000000000000000000",
        "00000000FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF",
    ]


def test_fixed_big_int_out_of_range_bits():
    bi = FixedBigInt(128)
    bi.set_bit(128)
    assert bi.bit(128) == 0
    assert str(bi) == "0" * 32
    bi.set_bit(127)
    assert bi.bit(127) == 1
    assert bi.bit(126) == 0


def test_fixed_big_int_huge_shift_clears():
    bi = FixedBigInt(64)
    bi.set_bit(3)
    bi.lsh(0x100000000000)
    assert str(bi) == "0000000000000000"
    assert bi.bit(3) == 0


LARGE_SEQ = 0x100000000000
MAX48 = 0x0000FFFFFFFFFFFF

CASES = [
    (
        "Continuous", 16, MAX48,
        list(range(21)),
        [True] * 21,
        list(range(21)),
        None,
    ),
    (
        "ValidLargeJump", 16, MAX48,
        [0, 1, 2, 3, 4, 5, 6, 7, 8, 9, LARGE_SEQ, 11, LARGE_SEQ + 1, LARGE_SEQ + 2, LARGE_SEQ + 3],
        [True] * 15,
        [0, 1, 2, 3, 4, 5, 6, 7, 8, 9, LARGE_SEQ, LARGE_SEQ + 1, LARGE_SEQ + 2, LARGE_SEQ + 3],
        None,
    ),
    (
        "InvalidLargeJump", 16, MAX48,
        [0, 1, 2, 3, 4, 5, 6, 7, 8, 9, LARGE_SEQ, 11, 12, 13, 14, 15],
        [True] * 10 + [False] + [True] * 5,
        [0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 11, 12, 13, 14, 15],
        None,
    ),
    (
        "DuplicateAfterValidJump", 196, MAX48,
        [0, 1, 2, 129, 0, 1, 2],
        [True] * 7,
        [0, 1, 2, 129],
        None,
    ),
    (
        "DuplicateAfterInvalidJump", 196, MAX48,
        [0, 1, 2, 128, 0, 1, 2],
        [True, True, True, False, True, True, True],
        [0, 1, 2],
        None,
    ),
    (
        "ContinuousOffset", 16, MAX48,
        list(range(100, 115)),
        [True] * 15,
        list(range(100, 115)),
        None,
    ),
    (
        "Reordered", 128, MAX48,
        [96, 64, 16, 80, 32, 48, 8, 24, 88, 40, 128, 56, 72, 112, 104, 120],
        [True] * 16,
        [96, 64, 16, 80, 32, 48, 8, 24, 88, 40, 128, 56, 72, 112, 104, 120],
        None,
    ),
    (
        "Old", 100, MAX48,
        [24, 32, 40, 48, 56, 64, 72, 80, 88, 96, 104, 112, 120, 128, 8, 16],
        [True] * 16,
        [24, 32, 40, 48, 56, 64, 72, 80, 88, 96, 104, 112, 120, 128],
        None,
    ),
    (
        "ContinuouesReplayed", 8, MAX48,
        list(range(16, 26)) + list(range(16, 26)),
        [True] * 20,
        list(range(16, 26)),
        None,
    ),
    (
        "ReplayedLater", 128, MAX48,
        [16, 32, 48, 64, 80, 96, 112, 128, 16, 32, 48, 64, 80, 96, 112, 128],
        [True] * 16,
        [16, 32, 48, 64, 80, 96, 112, 128],
        None,
    ),
    (
        "ReplayedQuick", 128, MAX48,
        [16, 16, 32, 32, 48, 48, 64, 64, 80, 80, 96, 96, 112, 112, 128, 128],
        [True] * 16,
        [16, 32, 48, 64, 80, 96, 112, 128],
        None,
    ),
    (
        "Strict", 0, MAX48,
        [1, 3, 2, 4, 5, 6, 7, 8, 9, 10],
        [True] * 10,
        [1, 3, 4, 5, 6, 7, 8, 9, 10],
        None,
    ),
    (
        "Overflow", 128, MAX48,
        [0x0000FFFFFFFFFFFE, 0x0000FFFFFFFFFFFF, 0x0001000000000000, 0x0001000000000001],
        [True] * 4,
        [0x0000FFFFFFFFFFFE, 0x0000FFFFFFFFFFFF],
        None,
    ),
    (
        "WrapContinuous", 64, 0xFFFF,
        [0xFFFC, 0xFFFD, 0xFFFE, 0xFFFF, 0x0000, 0x0001, 0x0002, 0x0003],
        [True] * 8,
        [0xFFFC, 0xFFFD, 0xFFFE, 0xFFFF],
        [0xFFFC, 0xFFFD, 0xFFFE, 0xFFFF, 0x0000, 0x0001, 0x0002, 0x0003],
    ),
    (
        "WrapReordered", 64, 0xFFFF,
        [0xFFFD, 0xFFFC, 0x0002, 0xFFFE, 0x0000, 0x0001, 0xFFFF, 0x0003],
        [True] * 8,
        [0xFFFD, 0xFFFC, 0xFFFE, 0xFFFF],
        [0xFFFD, 0xFFFC, 0x0002, 0xFFFE, 0x0000, 0x0001, 0xFFFF, 0x0003],
    ),
    (
        "WrapReorderedReplayed", 64, 0xFFFF,
        [0xFFFD, 0xFFFC, 0xFFFC, 0x0002, 0xFFFE, 0xFFFC, 0x0000, 0x0001, 0x0001, 0xFFFF, 0x0001, 0x0003],
        [True] * 12,
        [0xFFFD, 0xFFFC, 0xFFFE, 0xFFFF],
        [0xFFFD, 0xFFFC, 0x0002, 0xFFFE, 0x0000, 0x0001, 0xFFFF, 0x0003],
    ),
]


def _params():
    for name, window, max_seq, inputs, valid, expected, expected_wrap in CASES:
        yield pytest.param(False, window, max_seq, inputs, valid, expected, id=f"{name}-NoWrap")
        wrap_expected = expected if expected_wrap is None else expected_wrap
        yield pytest.param(
            True, window, max_seq, inputs, valid, wrap_expected, id=f"{name}-Wrap"
        )


@pytest.mark.parametrize("wrap,window,max_seq,inputs,valid,expected", list(_params()))
def test_replay_detector(wrap, window, max_seq, inputs, valid, expected):
    det = with_wrap(window, max_seq) if wrap else new(window, max_seq)
    out = []
    for seq, is_valid in zip(inputs, valid):
        accept = det.check(seq)
        if accept is not None and is_valid:
            out.append(seq)
            accept()
    assert out == expected


def test_factories_build_expected_detectors():
    assert isinstance(new(16, 100), SlidingWindowDetector)
    assert isinstance(with_wrap(16, 100), WrappedSlidingWindowDetector)
    assert new(16, 100).check(101) is None
    assert with_wrap(16, 100).check(101) is None


def test_check_without_accept_does_not_record():
    det = new(16, MAX48)
    assert det.check(5) is not None
    second = det.check(5)
    assert second is not None
    second()
    assert det.check(5) is None