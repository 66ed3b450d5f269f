"""
Status state machine tests.

The machine is the only writer of ``Montage.status``: unknown targets are
rejected without mutation, terminal states are absorbing, the lead guard
honours the installer policy and notifier failures never undo a change.
"""

from unittest.mock import Mock

import pytest

from montage_flow.core.exceptions import PolicyViolationError, UnknownStatusError
from montage_flow.models import db
from montage_flow.models.notification import Notification
from montage_flow.services.history import list_events
from montage_flow.services.settings_service import REQUIRE_INSTALLER_FOR_MEASUREMENT, AutomationSettings
from montage_flow.services.status_machine import (
    SOURCE_AUTOMATION,
    StatusChangeEvent,
    check_transition,
    transition,
)


def _status_events(montage):
    return [e for e in list_events(montage.id) if e.event_type == "status_change"]


class TestTransition:
    def test_manual_move_records_event_and_notifies(self, make_montage, office, settings):
        montage = make_montage(status="before_measurement")
        version_before = montage.version
        notifier = Mock()

        transition(montage, "before_installation", office, settings, notifier=notifier)

        assert montage.status == "before_installation"
        assert montage.version != version_before
        events = _status_events(montage)
        assert len(events) == 1
        assert events[0].payload == {
            "from": "before_measurement", "to": "before_installation", "source": "manual",
        }
        assert events[0].actor_id == "office-1"
        notifier.assert_called_once_with(StatusChangeEvent(
            montage_id=montage.id,
            from_status="before_measurement",
            to_status="before_installation",
            source="manual",
            actor_id="office-1",
        ))

    def test_backward_move_keeps_checklist(self, make_montage, office, settings):
        montage = make_montage(status="before_installation")
        for item in montage.checklist_items:
            item.completed = True
        db.session.commit()

        transition(montage, "lead", office, settings, notifier=Mock())

        assert montage.status == "lead"
        assert all(i.completed for i in montage.checklist_items)

    def test_same_status_is_noop(self, make_montage, office, settings):
        montage = make_montage(status="before_measurement")
        version_before = montage.version
        notifier = Mock()

        transition(montage, "before_measurement", office, settings, notifier=notifier)

        assert montage.version == version_before
        assert _status_events(montage) == []
        notifier.assert_not_called()

    def test_default_notifier_creates_notification(self, make_montage, office, settings):
        montage = make_montage(status="before_measurement")
        transition(montage, "before_first_payment", office, settings)

        notif = Notification.query.filter_by(montage_id=montage.id).one()
        assert notif.category == "status"
        assert notif.from_status == "before_measurement"
        assert notif.to_status == "before_first_payment"


class TestUnknownStatus:
    def test_rejected_without_mutation(self, make_montage, office, settings):
        montage = make_montage(status="before_measurement")
        version_before = montage.version

        with pytest.raises(UnknownStatusError) as exc_info:
            transition(montage, "measurement_scheduled", office, settings, notifier=Mock())

        assert exc_info.value.status == "measurement_scheduled"
        db.session.refresh(montage)
        assert montage.status == "before_measurement"
        assert montage.version == version_before
        assert _status_events(montage) == []

    def test_none_is_unknown(self, make_montage, settings):
        with pytest.raises(UnknownStatusError):
            check_transition(make_montage(), None, settings)

    def test_bad_source(self, make_montage, settings):
        with pytest.raises(ValueError):
            check_transition(make_montage(), "cancelled", settings, source="cron")


class TestTerminal:
    def test_completed_sets_completed_at(self, make_montage, office, settings):
        montage = make_montage(status="before_final_invoice")
        transition(montage, "completed", office, settings, notifier=Mock())
        assert montage.completed_at is not None

    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    def test_terminal_is_absorbing(self, make_montage, office, settings, terminal):
        montage = make_montage(status="before_installation")
        transition(montage, terminal, office, settings, notifier=Mock())

        with pytest.raises(PolicyViolationError) as exc_info:
            transition(montage, "before_installation", office, settings, notifier=Mock())

        assert exc_info.value.policy == "terminal_status"
        assert montage.status == terminal

    def test_terminal_same_status_is_noop(self, make_montage, office, settings):
        montage = make_montage(status="cancelled")
        transition(montage, "cancelled", office, settings, notifier=Mock())
        assert montage.status == "cancelled"

    def test_automation_cannot_complete(self, make_montage, office, settings):
        montage = make_montage(status="before_final_invoice")
        with pytest.raises(PolicyViolationError) as exc_info:
            transition(montage, "completed", office, settings, source=SOURCE_AUTOMATION, notifier=Mock())
        assert exc_info.value.policy == "manual_terminal_only"
        assert montage.status == "before_final_invoice"


class TestLeadGuard:
    def test_lead_without_installer_is_blocked(self, make_montage, office, settings):
        montage = make_montage(installer_id=None)

        with pytest.raises(PolicyViolationError) as exc_info:
            transition(montage, "before_measurement", office, settings, notifier=Mock())

        assert exc_info.value.policy == REQUIRE_INSTALLER_FOR_MEASUREMENT
        assert montage.status == "lead"

    def test_lead_can_always_be_cancelled(self, make_montage, office, settings):
        montage = make_montage(installer_id=None)
        transition(montage, "cancelled", office, settings, notifier=Mock())
        assert montage.status == "cancelled"

    def test_policy_off(self, make_montage, office):
        montage = make_montage(installer_id=None)
        settings = AutomationSettings(require_installer_for_measurement=False)
        transition(montage, "before_measurement", office, settings, notifier=Mock())
        assert montage.status == "before_measurement"

    def test_installer_assigned(self, make_montage, office, settings):
        montage = make_montage(installer_id="installer-7")
        transition(montage, "before_measurement", office, settings, notifier=Mock())
        assert montage.status == "before_measurement"


class TestNotifierFailure:
    def test_failure_is_swallowed(self, make_montage, office, settings):
        montage = make_montage(status="before_measurement")
        notifier = Mock(side_effect=RuntimeError("smtp down"))

        transition(montage, "before_first_payment", office, settings, notifier=notifier)

        notifier.assert_called_once()
        db.session.expire_all()
        assert montage.status == "before_first_payment"
        assert len(_status_events(montage)) == 1
