from teledesk.models.session import Severity

# Checked in order; the first matching rule wins.
SEVERITY_KEYWORDS: list[tuple[Severity, tuple[str, ...]]] = [
    (Severity.URGENT, ("urgent", "incident")),
    (Severity.HIGH, ("high priority", "critical")),
    (Severity.MEDIUM, ("medium priority",)),
    (Severity.LOW, ("low priority",)),
]


def infer_severity(text: str) -> Severity:
    """Guess ticket severity from keywords in free text."""
    lowered = (text or "").lower()
    for severity, keywords in SEVERITY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return severity
    return Severity.NORMAL
