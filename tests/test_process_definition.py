"""
Process definition tests.

The stage graph is compiled in; these tests pin its order, the navigation
helpers and the boundary behaviour (None at either end, terminal statuses
outside the chain).
"""

import pytest

from montage_flow.core.process_definition import (
    KNOWN_STATUSES,
    STAGE_IDS,
    StageActor,
    auto_advance_rule_id,
    find_automation,
    get_stage,
    get_stages,
    is_known_status,
    is_terminal,
    next_stage,
    previous_stage,
    stage_index,
    status_label,
)


class TestStageOrder:
    def test_lifecycle_order(self):
        assert STAGE_IDS == (
            "lead",
            "before_measurement",
            "before_first_payment",
            "before_installation",
            "before_final_invoice",
        )

    def test_get_stages_returns_stage_objects_in_order(self):
        assert [s.id for s in get_stages()] == list(STAGE_IDS)

    def test_every_stage_has_closed_actor(self):
        for stage in get_stages():
            assert isinstance(stage.actor, StageActor)

    def test_stages_are_immutable(self):
        with pytest.raises(Exception):
            get_stages()[0].label = "changed"


class TestNavigation:
    @pytest.mark.parametrize("stage_id", STAGE_IDS[1:])
    def test_next_of_previous_is_identity(self, stage_id):
        assert next_stage(previous_stage(stage_id).id).id == stage_id

    @pytest.mark.parametrize("stage_id", STAGE_IDS[:-1])
    def test_previous_of_next_is_identity(self, stage_id):
        assert previous_stage(next_stage(stage_id).id).id == stage_id

    def test_boundaries_return_none(self):
        assert previous_stage("lead") is None
        assert next_stage("before_final_invoice") is None

    def test_terminal_and_unknown_have_no_neighbours(self):
        for status in ("completed", "cancelled", "no_such_stage"):
            assert next_stage(status) is None
            assert previous_stage(status) is None
            assert stage_index(status) is None

    def test_get_stage_unknown_is_none(self):
        assert get_stage("bogus") is None
        assert get_stage("lead").label == "Lead"


class TestStatuses:
    def test_known_statuses_cover_stages_and_terminals(self):
        assert KNOWN_STATUSES == set(STAGE_IDS) | {"completed", "cancelled"}

    def test_is_terminal(self):
        assert is_terminal("completed")
        assert is_terminal("cancelled")
        assert not is_terminal("lead")

    def test_is_known_status(self):
        assert is_known_status("before_installation")
        assert not is_known_status("measurement_scheduled")

    def test_unknown_status_label_falls_back(self):
        assert status_label("measurement_scheduled") == "Measurement scheduled"
        assert status_label(None) == "Unknown"
        assert status_label("completed") == "Completed"


class TestAutomations:
    def test_auto_advance_rule_id(self):
        assert auto_advance_rule_id("lead") == "auto_advance_lead"
        assert get_stage("lead").auto_advance_rule_id == "auto_advance_lead"

    def test_find_static_automation(self):
        stage, automation = find_automation("auto_sms_reminder")
        assert stage.id == "before_measurement"
        assert automation.enabled_by_default is True

    def test_find_unknown_automation(self):
        assert find_automation("auto_teleport") is None

    def test_automation_ids_are_unique(self):
        ids = [a.id for s in get_stages() for a in s.automations]
        assert len(ids) == len(set(ids))

    def test_last_stage_has_no_gate(self):
        assert get_stage("before_final_invoice").gate_to_next_stage is False
