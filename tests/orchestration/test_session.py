"""End-to-end tests for AnalysisSession against the fake services."""

import pytest

from analysis_spine.changeset.commands import Command, CommandKind
from analysis_spine.core.errors import OperationCancelled
from analysis_spine.orchestration.mutations import MutationState


class TestAnalysisSession:
    @pytest.mark.asyncio
    async def test_fresh_task_end_to_end(self, session, fake, store, credentials):
        fake.runs = ["r_1"]
        events = []
        session.projector.subscribe(events.append)

        async with session:
            outcome = await session.analyze(credentials, user_id="user-1")

        assert outcome.succeeded
        assert outcome.progress == 100
        assert store.run.run_id == "r_1"
        assert [v.display for v in store.versions] == ["v1"]
        assert store.selected_version == "v1"
        assert events[-1].progress == 100

    @pytest.mark.asyncio
    async def test_analyze_then_edit_then_go_back(
        self, session, fake, store, credentials, run_payload_factory
    ):
        fake.runs = ["r_1"]
        await session.analyze(credentials, user_id="user-1")

        fake.standardized = run_payload_factory("r_2")
        fake.runs = ["r_1", "r_2"]
        outcome = await session.mutate(Command(CommandKind.EDIT_D1, ("seg-1",), prompt="by ARR"))
        assert outcome.state is MutationState.APPLIED
        assert store.selected_version == "v2"

        fake.run_results["r_1"] = run_payload_factory("r_1")
        run = await session.select_version("v1")
        assert run.run_id == "r_1"
        assert store.selected_run_id == "r_1"

        fake.run_results["r_2"] = run_payload_factory("r_2")
        versions = await session.refresh_versions()
        assert [v.display for v in versions] == ["v2", "v1"]
        assert store.run.run_id == "r_2"

        await session.aclose()

    @pytest.mark.asyncio
    async def test_feedback_regeneration(self, session, fake, credentials):
        await session.analyze(credentials, user_id="user-1")
        fake.feedback = {"status": "requires_full_regeneration"}

        outcome = await session.feedback("use a different dataset")

        assert outcome.state is MutationState.REGENERATION_REQUIRED
        await session.aclose()

    @pytest.mark.asyncio
    async def test_cancel_stops_pending_waits(self, session):
        session.cancel("user closed the page")
        with pytest.raises(OperationCancelled):
            await session.token.sleep(10)
        await session.aclose()
