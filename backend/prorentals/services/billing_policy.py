"""Pure decisions taken on an approved damage report. No I/O here."""

AUTO_BILLING_MAX_TOTAL = 10000
AUTO_BILLING_MAX_ADJUSTMENT_DELTA = 500
CUSTOMER_NOTIFICATION_MIN_TOTAL = 100


def is_eligible_for_auto_billing(report) -> bool:
    if float(report.total_cost or 0) > AUTO_BILLING_MAX_TOTAL:
        return False

    for adj in report.adjustments or []:
        delta = float(adj.get("newCost") or 0) - float(adj.get("originalCost") or 0)
        if abs(delta) > AUTO_BILLING_MAX_ADJUSTMENT_DELTA:
            return False

    # approved is None unless a partial approval ran
    if any(item.approved is False for item in report.damages):
        return False

    return True


def should_notify_customer(report) -> bool:
    return float(report.total_cost or 0) > CUSTOMER_NOTIFICATION_MIN_TOTAL


def approval_priority(report) -> str:
    total = float(report.total_cost or 0)
    severities = {item.severity for item in report.damages}
    if total > 5000 or "critical" in severities:
        return "urgent"
    if total > 1000 or "high" in severities:
        return "high"
    if total > 200:
        return "normal"
    return "low"
