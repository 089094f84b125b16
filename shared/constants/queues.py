class Queues:
    """Centralised durable queue definitions"""

    TRACKING = "tracking"

    # Job names carried on each queued job
    PROCESS_EVENT = "process-event"

    # Priorities: higher is served first
    PRIORITY_HIGH = 10
    PRIORITY_NORMAL = 5
