"""Tests for core.models.

Covers:
- Wire normalisation of runs, segments and questions
- Version labels and numeric ordering
- Job status coercion and terminal states
- Validation report verdicts
- Mutation response statuses
"""

import pytest

from analysis_spine.core.errors import DataValidationError
from analysis_spine.core.models import (
    AnalysisRun,
    Credentials,
    DataValidationReport,
    JobResult,
    JobStatus,
    MutationResponse,
    Segment,
    ValueQuestion,
    Version,
    sort_versions,
)


class TestWireNormalisation:
    def test_segment_reads_camel_case(self, run_payload_factory):
        run = AnalysisRun.from_wire(run_payload_factory())
        segment = run.segments[0]
        assert segment.segment_id == "seg-1"
        assert segment.analysis.dimension("d2") == "growth"
        assert [q.id for q in segment.value_questions] == ["q1a", "q1b"]

    def test_segment_id_falls_back_to_id(self):
        segment = Segment.model_validate({"id": 7, "name": "Retail"})
        assert segment.segment_id == "7"

    def test_question_text_fallback(self):
        question = ValueQuestion.model_validate({"id": 3, "text": "Why?"})
        assert question.id == "3"
        assert question.question == "Why?"

    def test_anchor_index_alias(self):
        run = AnalysisRun.from_wire({"anchorIndex": {"k": 1}, "segments": None})
        assert run.anch_index == {"k": 1}
        assert run.segments == ()

    def test_to_wire_round_trips_aliases(self, run_payload_factory):
        run = AnalysisRun.from_wire(run_payload_factory())
        wire = run.to_wire()
        assert wire["anchIndex"] == {"metric": "revenue"}
        assert wire["segments"][0]["segmentId"] == "seg-1"
        assert "valueQuestions" in wire["segments"][0]

    def test_run_is_frozen(self, run_factory):
        run = run_factory()
        with pytest.raises(Exception):
            run.run_id = "r_2"

    def test_with_ids_ignores_none(self, run_factory):
        run = run_factory().with_ids(run_id=None, user_id="u-9")
        assert run.run_id == "r_1"
        assert run.user_id == "u-9"

    def test_segment_lookups(self, run_factory):
        run = run_factory()
        assert run.segment_by_id("seg-2").name == "SMB"
        assert run.segment_by_name("Consumer").segment_id == "seg-3"
        assert run.segment_by_id("nope") is None
        assert run.segment_names == ["Enterprise", "SMB", "Consumer"]

    def test_unknown_dimension(self, run_factory):
        with pytest.raises(KeyError):
            run_factory().segments[0].analysis.dimension("D5")


class TestVersions:
    def test_label_from_run_id(self):
        version = Version.from_run_id("r_12")
        assert version.display == "v12"
        assert version.number == 12

    def test_numeric_descending_order(self):
        versions = sort_versions(["r_3", "r_1", "r_10"])
        assert [v.display for v in versions] == ["v10", "v3", "v1"]

    def test_run_id_without_suffix_keeps_raw_id(self):
        versions = sort_versions(["draft", "r_2"])
        assert [v.display for v in versions] == ["v2", "draft"]
        assert versions[1].number == 0


class TestJobStatus:
    @pytest.mark.parametrize("value", ["completed", "failed", "error"])
    def test_terminal(self, value):
        assert JobStatus.coerce(value).is_terminal

    @pytest.mark.parametrize("value", ["queued", "running", "timeout"])
    def test_not_terminal(self, value):
        assert not JobStatus.coerce(value).is_terminal

    def test_unknown_status_counts_as_running(self):
        assert JobStatus.coerce("warming_up") is JobStatus.RUNNING
        assert JobStatus.coerce(None) is JobStatus.RUNNING

    def test_job_result_from_payload(self):
        result = JobResult.from_payload(
            "job-1",
            {"status": "COMPLETED", "progress": 100, "run_results": {"task_id": "t-1"}},
        )
        assert result.succeeded
        assert result.progress == 100.0
        assert result.task_id == "t-1"

    def test_non_numeric_progress_ignored(self):
        result = JobResult.from_payload("job-1", {"status": "running", "progress": "half"})
        assert result.progress is None


class TestCredentials:
    def test_blank(self):
        assert Credentials(project_id=" ", access_token="x").is_blank
        assert Credentials(project_id="p", access_token="").is_blank

    def test_token_hidden_in_repr(self):
        credentials = Credentials(project_id="p", access_token="secret")
        assert "secret" not in repr(credentials)
        assert credentials.to_wire() == {"projectId": "p", "accessToken": "secret"}


class TestDataValidationReport:
    def test_usable_report(self):
        report = DataValidationReport.from_payload(
            {
                "trace_id": "t-1",
                "data_structure": {"database_note": "ok"},
                "validation_report": {"summary": {"status": "usable"}},
            }
        )
        report.ensure_usable()
        assert report.database_note == "ok"

    def test_unusable_report_raises_semantic_error(self):
        report = DataValidationReport.from_payload(
            {
                "trace_id": "t-1",
                "data_structure": {},
                "validation_report": {"summary": {"status": "unusable", "note": "no rows"}},
            }
        )
        with pytest.raises(DataValidationError) as exc_info:
            report.ensure_usable()
        assert exc_info.value.semantic is True
        assert exc_info.value.note == "no rows"
        assert exc_info.value.context.trace_id == "t-1"


class TestMutationResponse:
    def test_statuses(self):
        assert MutationResponse.from_payload({"status": "ignored"}).ignored
        assert MutationResponse.from_payload(
            {"status": "requires_full_regeneration"}
        ).requires_full_regeneration

    def test_run_result_extraction(self):
        response = MutationResponse.from_payload(
            {"status": "ok", "run_results": {"run_result": {"segments": []}}}
        )
        assert response.run_result == {"segments": []}
        assert MutationResponse.from_payload({"status": "ok"}).run_result is None
