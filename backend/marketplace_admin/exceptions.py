"""Domain exceptions raised by services and translated to HTTP errors by routes."""


class OpsError(Exception):
    """Base for operations back-office errors."""
    pass


class CircuitOpenError(OpsError):
    """A circuit breaker refused the call because the service is failing."""
    def __init__(self, service: str, retry_at: float):
        self.service = service
        self.retry_at = retry_at
        super().__init__(f"Circuit breaker is OPEN for {service}")


class UnknownQueueError(OpsError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown queue: {name}")


class UnknownServiceError(OpsError):
    def __init__(self, service: str):
        self.service = service
        super().__init__(f"No circuit breaker registered for {service}")


class TriggerError(OpsError):
    """A scheduled job type cannot be triggered manually."""
    pass
