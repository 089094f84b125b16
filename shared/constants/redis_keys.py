class RedisKeys:
    """Centralised Redis key pattern definitions"""

    # Durable queue
    QUEUE_ID_COUNTER = "queue:{queue}:id"
    QUEUE_JOB_HASH = "queue:{queue}:job:{job_id}"
    QUEUE_WAITING = "queue:{queue}:waiting"
    QUEUE_ACTIVE = "queue:{queue}:active"
    QUEUE_DELAYED = "queue:{queue}:delayed"
    QUEUE_COMPLETED = "queue:{queue}:completed"
    QUEUE_FAILED = "queue:{queue}:failed"

    # Session rollups
    SESSION_HASH = "session:{tenant_id}:{session_id}"
    # Separate prefix: client session ids may contain ":"
    SESSION_APPLIED_SET = "session-applied:{tenant_id}:{session_id}"

    # Tenants (written by the project service, read here)
    TENANT_HASH = "tenant:{tracking_id}"

    # Ingestion rate limiting
    RATE_LIMIT_COUNTER = "ratelimit:track:{client}:{window}"

    @classmethod
    def queue_key(cls, kind: str, queue: str) -> str:
        """Generate a queue-level key for the given structure kind."""
        patterns = {
            "id": cls.QUEUE_ID_COUNTER,
            "waiting": cls.QUEUE_WAITING,
            "active": cls.QUEUE_ACTIVE,
            "delayed": cls.QUEUE_DELAYED,
            "completed": cls.QUEUE_COMPLETED,
            "failed": cls.QUEUE_FAILED,
        }
        pattern = patterns.get(kind)
        if not pattern:
            raise ValueError(f"Unknown queue key kind: {kind}")
        return pattern.format(queue=queue)

    @classmethod
    def job_key(cls, queue: str, job_id: str) -> str:
        return cls.QUEUE_JOB_HASH.format(queue=queue, job_id=job_id)

    @classmethod
    def session_key(cls, tenant_id: str, session_id: str) -> str:
        """Generate session key for given (tenant, session) pair."""
        return cls.SESSION_HASH.format(tenant_id=tenant_id, session_id=session_id)

    @classmethod
    def session_applied_key(cls, tenant_id: str, session_id: str) -> str:
        return cls.SESSION_APPLIED_SET.format(
            tenant_id=tenant_id, session_id=session_id
        )

    @classmethod
    def tenant_key(cls, tracking_id: str) -> str:
        return cls.TENANT_HASH.format(tracking_id=tracking_id)

    @classmethod
    def rate_limit_key(cls, client: str, window: int) -> str:
        return cls.RATE_LIMIT_COUNTER.format(client=client, window=window)
