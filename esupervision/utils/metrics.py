"""Prometheus metrics exporters."""
from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry
registry = CollectorRegistry()

# ========== CHECKIN METRICS ==========
checkins_created = Counter(
    'checkins_created_total',
    'Total number of check-ins created',
    ['created_by'],
    registry=registry
)

checkins_submitted = Counter(
    'checkins_submitted_total',
    'Total number of check-ins submitted',
    ['auto_id_check'],
    registry=registry
)

checkins_reviewed = Counter(
    'checkins_reviewed_total',
    'Total number of check-ins reviewed',
    ['manual_id_check'],
    registry=registry
)

checkins_expired = Counter(
    'checkins_expired_total',
    'Total number of check-ins expired by the sweep',
    registry=registry
)

checkin_reminders = Counter(
    'checkin_reminders_total',
    'Total number of check-in reminders processed',
    registry=registry
)

# ========== IDENTITY VERIFICATION METRICS ==========
id_verification_results = Counter(
    'id_verification_results_total',
    'Automated identity verification outcomes',
    ['result'],
    registry=registry
)

circuit_breaker_state = Gauge(
    'circuit_breaker_state',
    'Circuit breaker state (0=closed, 1=half_open, 2=open)',
    ['name'],
    registry=registry
)

# ========== SIDE EFFECT METRICS ==========
audit_events = Counter(
    'audit_events_total',
    'Audit events by outcome',
    ['event_type', 'outcome'],
    registry=registry
)

notification_failures = Counter(
    'notification_failures_total',
    'Notifications that could not be sent',
    ['notification_type'],
    registry=registry
)

domain_event_failures = Counter(
    'domain_event_failures_total',
    'Domain events that could not be published',
    ['event_type'],
    registry=registry
)

# ========== SWEEP METRICS ==========
sweep_runs = Counter(
    'sweep_runs_total',
    'Scheduled sweep runs by outcome',
    ['sweep', 'outcome'],
    registry=registry
)

# ========== HELPER FUNCTIONS ==========
BREAKER_STATE_VALUES = {'CLOSED': 0, 'HALF_OPEN': 1, 'OPEN': 2}

def record_checkin_created(created_by: str):
    """Record a new check-in."""
    checkins_created.labels(created_by=created_by).inc()

def record_checkin_submitted(auto_id_check: str):
    """Record a check-in submission."""
    checkins_submitted.labels(auto_id_check=auto_id_check).inc()

def record_checkin_reviewed(manual_id_check: str):
    """Record a check-in review."""
    checkins_reviewed.labels(manual_id_check=manual_id_check).inc()

def record_checkins_expired(count: int):
    checkins_expired.inc(count)

def record_reminders(count: int):
    checkin_reminders.inc(count)

def record_id_verification(result: str):
    """Record an automated identity verification outcome."""
    id_verification_results.labels(result=result).inc()

def update_breaker_state(name: str, state: str):
    """Update circuit breaker state gauge."""
    circuit_breaker_state.labels(name=name).set(BREAKER_STATE_VALUES[state])

def record_audit(event_type: str, outcome: str, count: int = 1):
    """Record audit events written, skipped or failed."""
    audit_events.labels(event_type=event_type, outcome=outcome).inc(count)

def record_notification_failure(notification_type: str):
    notification_failures.labels(notification_type=notification_type).inc()

def record_domain_event_failure(event_type: str):
    domain_event_failures.labels(event_type=event_type).inc()

def record_sweep_run(sweep: str, outcome: str):
    """Record a sweep run (completed, skipped, failed)."""
    sweep_runs.labels(sweep=sweep, outcome=outcome).inc()
