import enum


class POStatus(str, enum.Enum):
    draft = "draft"
    pending_approval = "pending_approval"
    approved = "approved"
    sent = "sent"
    partial = "partial"
    received = "received"
    cancelled = "cancelled"
    on_hold = "on_hold"

    @property
    def is_terminal(self) -> bool:
        return not PO_TRANSITIONS[self]

    def can_transition_to(self, target: "POStatus") -> bool:
        return target in PO_TRANSITIONS[self]


# Every edge the lifecycle engine may take. Anything else is rejected.
PO_TRANSITIONS: dict[POStatus, frozenset[POStatus]] = {
    POStatus.draft: frozenset({POStatus.pending_approval, POStatus.on_hold, POStatus.cancelled}),
    POStatus.pending_approval: frozenset({POStatus.approved, POStatus.on_hold, POStatus.cancelled}),
    POStatus.approved: frozenset({POStatus.sent, POStatus.on_hold, POStatus.cancelled}),
    POStatus.sent: frozenset({POStatus.partial, POStatus.received, POStatus.on_hold, POStatus.cancelled}),
    POStatus.partial: frozenset({POStatus.partial, POStatus.received, POStatus.on_hold, POStatus.cancelled}),
    POStatus.on_hold: frozenset({POStatus.on_hold, POStatus.cancelled}),
    POStatus.received: frozenset(),
    POStatus.cancelled: frozenset(),
}

# Items of these orders still count towards quantity_on_order
OPEN_PO_STATUSES = frozenset(status for status, targets in PO_TRANSITIONS.items() if targets)

EDITABLE_PO_STATUSES = frozenset({POStatus.draft, POStatus.pending_approval})


class DeliveryMethod(str, enum.Enum):
    delivery = "delivery"
    pickup = "pickup"


class SentVia(str, enum.Enum):
    email = "email"
    viber = "viber"
    message = "message"
    other = "other"


class TransactionType(str, enum.Enum):
    purchase_receive = "purchase_receive"
    sale = "sale"
    adjustment = "adjustment"
    return_ = "return"
    transfer = "transfer"
    count = "count"


class ReceiptStatus(str, enum.Enum):
    pending = "pending"
    verified = "verified"
    filed = "filed"
    discrepancy = "discrepancy"
