"""Tests for ChangesetBuilder: expansion, validation and policy."""

import pytest

from analysis_spine.changeset.builder import (
    STANDARD_POLICY,
    ChangesetBuilder,
    ChangesetEntry,
    ensure_submittable,
)
from analysis_spine.changeset.commands import Command, CommandKind
from analysis_spine.changeset.selectors import SegmentRef
from analysis_spine.core.errors import ChangesetRejected, UnresolvedSelectorError
from analysis_spine.core.models import AnalysisRun


@pytest.fixture
def builder():
    return ChangesetBuilder()


@pytest.fixture
def run(run_factory):
    return run_factory()


def wires(entries):
    return [entry.to_wire()["selector"] for entry in entries]


class TestCommandKind:
    def test_removal_and_rename_skip_standardize(self):
        assert not CommandKind.REMOVE_SEGMENTS.requires_standardize
        assert not CommandKind.REMOVE_QUESTIONS.requires_standardize
        assert not CommandKind.RENAME_SEGMENT.requires_standardize

    @pytest.mark.parametrize(
        "kind",
        [
            CommandKind.CORRECT_SEGMENT,
            CommandKind.ADD_SEGMENT,
            CommandKind.MERGE_SEGMENTS,
            CommandKind.EDIT_D1,
            CommandKind.ADD_QUESTION,
            CommandKind.EDIT_QUESTION,
        ],
    )
    def test_others_restandardize(self, kind):
        assert kind.requires_standardize

    def test_targets(self):
        assert CommandKind.EDIT_D4.target == "analysis"
        assert CommandKind.EDIT_D4.dimension == "D4"
        assert CommandKind.REMOVE_QUESTIONS.target == "valueQuestion"
        assert CommandKind.MERGE_SEGMENTS.target == "segment"

    def test_feedback_text(self):
        command = Command(CommandKind.RENAME_SEGMENT, ("seg-1",), new_name="Large accounts")
        assert command.feedback_text() == "change segment: to 'Large accounts'"
        assert Command(CommandKind.ADD_SEGMENT).feedback_text() == "add segment"


class TestSingleTarget:
    def test_dimension_edit(self, builder, run):
        entries = builder.build(
            Command(CommandKind.EDIT_D2, ("seg-2",), prompt="use quarterly growth"), run
        )
        assert len(entries) == 1
        entry = entries[0].to_wire()
        assert entry["intent"] == "edit"
        assert entry["target"] == "analysis"
        assert entry["selector"] == "segments[segmentId=seg-2].analysis.D2"
        assert entry["prompt"] == "use quarterly growth"

    def test_question_edit(self, builder, run):
        entries = builder.build(Command(CommandKind.EDIT_QUESTION, ("seg-1",), ("q1b",)), run)
        assert wires(entries) == ["segments[segmentId=seg-1].valueQuestions[id=q1b]"]

    def test_add_question_targets_collection(self, builder, run):
        entries = builder.build(Command(CommandKind.ADD_QUESTION, ("seg-3",)), run)
        assert wires(entries) == ["segments[segmentId=seg-3].valueQuestions"]

    def test_add_segment_targets_collection(self, builder, run):
        entries = builder.build(Command(CommandKind.ADD_SEGMENT, prompt="students"), run)
        assert wires(entries) == ["segments"]
        assert entries[0].intent == "add"

    def test_correct_segment(self, builder, run):
        entries = builder.build(Command(CommandKind.CORRECT_SEGMENT, ("seg-1",)), run)
        assert wires(entries) == ["segments[segmentId=seg-1]"]
        assert entries[0].intent == "correct"

    def test_every_entry_carries_standard_policy(self, builder, run):
        entries = builder.build(Command(CommandKind.REMOVE_SEGMENTS, ("seg-1", "seg-2")), run)
        assert all(entry.policy == STANDARD_POLICY for entry in entries)
        assert entries[0].to_wire()["policy"] == {
            "propagation": "standard",
            "strict_scope": True,
            "downgrade_shapes": True,
        }


class TestBatchExpansion:
    def test_three_segments_three_entries(self, builder, run_payload_factory):
        payload = run_payload_factory()
        payload["segments"].append({"segmentId": "seg-4", "name": "Public sector"})
        run = AnalysisRun.from_wire(payload)

        entries = builder.build(
            Command(CommandKind.REMOVE_SEGMENTS, ("seg-1", "seg-2", "seg-3")), run
        )

        assert len(entries) == 3
        assert wires(entries) == [
            "segments[segmentId=seg-1]",
            "segments[segmentId=seg-2]",
            "segments[segmentId=seg-3]",
        ]
        assert all(entry.intent == "remove" for entry in entries)

    def test_duplicates_collapse(self, builder, run):
        entries = builder.build(Command(CommandKind.REMOVE_SEGMENTS, ("seg-1", "seg-1")), run)
        assert len(entries) == 1

    def test_question_batch(self, builder, run_payload_factory):
        payload = run_payload_factory()
        payload["segments"][0]["valueQuestions"].append({"id": "q1c", "question": "Who buys?"})
        run = AnalysisRun.from_wire(payload)

        entries = builder.build(
            Command(CommandKind.REMOVE_QUESTIONS, ("seg-1",), ("q1a", "q1c")), run
        )
        assert wires(entries) == [
            "segments[segmentId=seg-1].valueQuestions[id=q1a]",
            "segments[segmentId=seg-1].valueQuestions[id=q1c]",
        ]


class TestMinimumRemainder:
    def test_removing_all_segments_rejected(self, builder, run):
        with pytest.raises(ChangesetRejected) as exc_info:
            builder.build(Command(CommandKind.REMOVE_SEGMENTS, ("seg-1", "seg-2", "seg-3")), run)
        assert exc_info.value.reason == "min_remainder"

    def test_all_but_one_accepted(self, builder, run):
        entries = builder.build(Command(CommandKind.REMOVE_SEGMENTS, ("seg-1", "seg-2")), run)
        assert len(entries) == 2

    def test_removing_all_questions_rejected(self, builder, run):
        with pytest.raises(ChangesetRejected) as exc_info:
            builder.build(Command(CommandKind.REMOVE_QUESTIONS, ("seg-1",), ("q1a", "q1b")), run)
        assert exc_info.value.reason == "min_remainder"

    def test_removing_all_but_one_question_accepted(self, builder, run):
        entries = builder.build(Command(CommandKind.REMOVE_QUESTIONS, ("seg-1",), ("q1a",)), run)
        assert len(entries) == 1


class TestRefusals:
    def test_unknown_segment(self, builder, run):
        with pytest.raises(ChangesetRejected) as exc_info:
            builder.build(Command(CommandKind.EDIT_D1, ("seg-99",)), run)
        assert exc_info.value.reason == "unknown_segment"

    def test_unknown_question(self, builder, run):
        with pytest.raises(ChangesetRejected) as exc_info:
            builder.build(Command(CommandKind.EDIT_QUESTION, ("seg-1",), ("q9",)), run)
        assert exc_info.value.reason == "unknown_question"

    def test_empty_batch(self, builder, run):
        with pytest.raises(ChangesetRejected) as exc_info:
            builder.build(Command(CommandKind.REMOVE_SEGMENTS), run)
        assert exc_info.value.reason == "empty_batch"

    def test_rename_without_name(self, builder, run):
        with pytest.raises(ChangesetRejected) as exc_info:
            builder.build(Command(CommandKind.RENAME_SEGMENT, ("seg-1",), new_name="  "), run)
        assert exc_info.value.reason == "missing_name"

    def test_placeholder_id_in_run_is_unresolved(self, builder, run_payload_factory):
        payload = run_payload_factory()
        payload["segments"][0]["segmentId"] = "xxx"
        run = AnalysisRun.from_wire(payload)
        with pytest.raises(UnresolvedSelectorError):
            builder.build(Command(CommandKind.EDIT_D1, ("xxx",)), run)

    def test_ensure_submittable_rejects_empty(self):
        with pytest.raises(ChangesetRejected):
            ensure_submittable([])

    def test_ensure_submittable_rejects_whole_batch(self):
        entries = [
            ChangesetEntry("remove", "segment", SegmentRef("seg-1")),
            ChangesetEntry("remove", "segment", SegmentRef("xxx")),
        ]
        with pytest.raises(UnresolvedSelectorError):
            ensure_submittable(entries)


class TestMerge:
    def test_single_entry_naming_all_segments(self, builder, run):
        entries = builder.build(
            Command(CommandKind.MERGE_SEGMENTS, ("seg-1", "seg-2"), prompt="combine"), run
        )
        assert len(entries) == 1
        entry = entries[0].to_wire()
        assert entry["selector"] == "segments"
        assert entry["intent"] == "merge"
        assert "Enterprise" in entry["prompt"] and "SMB" in entry["prompt"]
        assert entry["prompt"].endswith("combine")

    def test_needs_two_distinct_segments(self, builder, run):
        with pytest.raises(ChangesetRejected) as exc_info:
            builder.build(Command(CommandKind.MERGE_SEGMENTS, ("seg-1", "seg-1")), run)
        assert exc_info.value.reason == "merge_needs_two"
