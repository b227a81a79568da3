PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

TERMINAL_STATUSES = {COMPLETED, FAILED, CANCELLED}

ALLOWED_TRANSITIONS = {
    PENDING: [COMPLETED, FAILED, CANCELLED],
    COMPLETED: [],
    FAILED: [],
    CANCELLED: []
}
