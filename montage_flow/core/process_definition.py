"""
Montage Workflow Service
Process definition — the fixed, ordered lifecycle graph.

Stages are compiled in; changing them is a deployment-time change, not a
runtime operation. Everything here is immutable and side-effect free.

    lead → before_measurement → before_first_payment
         → before_installation → before_final_invoice
         (+ terminal: completed, cancelled)
"""

from dataclasses import dataclass, field
from enum import Enum


class StageActor(str, Enum):
    """Who is expected to move a job forward in a stage."""

    CLIENT = "client"
    OFFICE = "office"
    INSTALLER = "installer"
    SYSTEM = "system"


@dataclass(frozen=True)
class Checkpoint:
    """A named condition met when the linked checklist item is completed."""

    key: str
    label: str
    template_id: str

    def to_dict(self):
        return {"key": self.key, "label": self.label, "template_id": self.template_id}


@dataclass(frozen=True)
class Automation:
    """Side-effecting rule attached to a stage; only its enablement lives here."""

    id: str
    label: str
    description: str = ""
    trigger: str = ""
    enabled_by_default: bool = True

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "trigger": self.trigger,
            "enabled_by_default": self.enabled_by_default,
        }


@dataclass(frozen=True)
class Stage:
    id: str
    label: str
    description: str
    actor: StageActor
    checkpoints: tuple = field(default_factory=tuple)
    automations: tuple = field(default_factory=tuple)
    gate_to_next_stage: bool = True

    @property
    def auto_advance_rule_id(self):
        return auto_advance_rule_id(self.id)

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "actor": self.actor.value,
            "checkpoints": [c.to_dict() for c in self.checkpoints],
            "automations": [a.to_dict() for a in self.automations],
            "gate_to_next_stage": self.gate_to_next_stage,
        }


# ── Stage graph ──────────────────────────────────────────────────────────────

AUTO_ADVANCE_PREFIX = "auto_advance_"

STAGES = (
    Stage(
        id="lead",
        label="Lead",
        description="New enquiry; contact the client and qualify the job.",
        actor=StageActor.OFFICE,
        checkpoints=(
            Checkpoint("client_contacted", "Client contacted", "lead_contact"),
        ),
        automations=(
            Automation("auto_lead_notification", "Office notification",
                       "E-mail/SMS to the office about a new lead", "New record"),
        ),
    ),
    Stage(
        id="before_measurement",
        label="Before measurement",
        description="Installer schedules and performs the measurement.",
        actor=StageActor.INSTALLER,
        checkpoints=(
            Checkpoint("measurement_data", "Measurement data", "measurement_done"),
            Checkpoint("labor_cost", "Labor cost estimate", "labor_cost_estimate"),
        ),
        automations=(
            Automation("auto_installer_notif", "Installer notification",
                       "SMS: new client to schedule", "Status change"),
            Automation("auto_sms_reminder", "SMS reminder",
                       "SMS to the client 24h before the measurement", "24h before"),
        ),
    ),
    Stage(
        id="before_first_payment",
        label="Before first payment",
        description="Quote accepted; advance invoice issued and awaiting payment.",
        actor=StageActor.CLIENT,
        checkpoints=(
            Checkpoint("quote_accepted", "Quote accepted", "quote_accepted"),
            Checkpoint("deposit_paid", "Deposit paid", "deposit_paid"),
        ),
        automations=(
            Automation("auto_payment_reminder", "Payment reminder",
                       "SMS/e-mail reminding about a missing payment", "Every 3 days"),
            Automation("auto_payment_confirmation", "Payment confirmation",
                       "SMS/e-mail to the client confirming the payment", "Payment booked"),
        ),
    ),
    Stage(
        id="before_installation",
        label="Before installation",
        description="Materials ordered, installation scheduled and carried out.",
        actor=StageActor.OFFICE,
        checkpoints=(
            Checkpoint("materials_ordered", "Materials ordered", "materials_ordered"),
            Checkpoint("installation_date", "Installation date set", "installation_date_set"),
            Checkpoint("protocol_signed", "Handover protocol signed", "protocol_signed"),
        ),
        automations=(
            Automation("auto_supplier_mail", "Supplier e-mail",
                       "Send the purchase order PDF to the supplier", "Order approved"),
            Automation("auto_installation_reminder", "Installation reminder",
                       "SMS to the client 48h before the installation", "48h before"),
        ),
    ),
    Stage(
        id="before_final_invoice",
        label="Before final invoice",
        description="Final invoice issued; waiting for settlement.",
        actor=StageActor.OFFICE,
        checkpoints=(
            Checkpoint("final_invoice", "Final invoice issued", "final_invoice_issued"),
        ),
        automations=(
            Automation("auto_final_invoice", "Final invoice draft",
                       "Generate a draft of the final invoice", "Protocol signed"),
        ),
        gate_to_next_stage=False,
    ),
)

TERMINAL_STATUSES = {
    "completed": "Completed",
    "cancelled": "Cancelled",
}

STAGE_IDS = tuple(s.id for s in STAGES)
KNOWN_STATUSES = frozenset(STAGE_IDS) | frozenset(TERMINAL_STATUSES)
INITIAL_STATUS = STAGE_IDS[0]

_BY_ID = {s.id: s for s in STAGES}
_INDEX = {s.id: i for i, s in enumerate(STAGES)}


# ── Navigation ───────────────────────────────────────────────────────────────

def get_stages():
    """Return the ordered stage tuple."""
    return STAGES


def get_stage(stage_id):
    return _BY_ID.get(stage_id)


def stage_index(stage_id):
    """Position of a stage in lifecycle order, or None for terminal/unknown ids."""
    return _INDEX.get(stage_id)


def next_stage(stage_id):
    """Stage immediately after ``stage_id``; None at the end or for non-stages."""
    idx = _INDEX.get(stage_id)
    if idx is None or idx + 1 >= len(STAGES):
        return None
    return STAGES[idx + 1]


def previous_stage(stage_id):
    """Stage immediately before ``stage_id``; None at the start or for non-stages."""
    idx = _INDEX.get(stage_id)
    if idx is None or idx == 0:
        return None
    return STAGES[idx - 1]


def is_terminal(status):
    return status in TERMINAL_STATUSES


def is_known_status(status):
    return status in KNOWN_STATUSES


def status_label(status):
    """Display label; unknown statuses fall back to a humanised id."""
    stage = _BY_ID.get(status)
    if stage is not None:
        return stage.label
    if status in TERMINAL_STATUSES:
        return TERMINAL_STATUSES[status]
    if not status:
        return "Unknown"
    return str(status).replace("_", " ").capitalize()


def auto_advance_rule_id(stage_id):
    return f"{AUTO_ADVANCE_PREFIX}{stage_id}"


def find_automation(rule_id):
    """Return ``(stage, automation)`` for a static automation id, else None."""
    for stage in STAGES:
        for automation in stage.automations:
            if automation.id == rule_id:
                return stage, automation
    return None
