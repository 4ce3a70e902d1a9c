import pytest

from auracle.core.loop_detector import LoopDetector


def test_flags_once_three_copies_are_already_recorded() -> None:
    detector = LoopDetector()

    assert [detector.add_action("same") for _ in range(3)] == [False, False, False]
    assert detector.add_action("same") is True
    assert detector.history == ("same", "same", "same")


def test_actions_are_compared_after_trimming() -> None:
    detector = LoopDetector(repeat_threshold=1)

    assert detector.add_action("  step\n") is False
    assert detector.add_action("step") is True


def test_history_is_bounded_fifo() -> None:
    detector = LoopDetector(max_history=3)

    for action in ["a", "b", "c", "d"]:
        detector.add_action(action)

    assert detector.history == ("b", "c", "d")
    assert detector.max_history == 3


def test_evicted_actions_no_longer_count() -> None:
    detector = LoopDetector(max_history=3, repeat_threshold=2)

    detector.add_action("x")
    detector.add_action("x")
    detector.add_action("y")
    detector.add_action("z")

    assert detector.add_action("x") is False


def test_reset_clears_history() -> None:
    detector = LoopDetector()
    detector.add_action("a")

    detector.reset()

    assert detector.history == ()


def test_rejects_empty_history() -> None:
    with pytest.raises(ValueError):
        LoopDetector(max_history=0)
