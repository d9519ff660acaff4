"""Error taxonomy for scheduled and manual automation runs."""


class AutomationError(Exception):
    """Base class for automation errors."""


class SourceUnavailable(AutomationError):
    """The match source could not be reached. Fatal to the run."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"Match source {provider} unavailable: {reason}")
        self.provider = provider
        self.reason = reason


class AnnotationFailed(AutomationError):
    """Annotation failed for one fixture. Recovered within the run."""

    def __init__(self, fixture_id: int, reason: str):
        super().__init__(f"Annotation failed for fixture {fixture_id}: {reason}")
        self.fixture_id = fixture_id
        self.reason = reason


class PersistenceFailed(AutomationError):
    """The tip store failed. Fatal to the run unless it hit a single tip."""

    def __init__(self, fixture_id: int | None, reason: str):
        if fixture_id is None:
            super().__init__(f"Tip store failed: {reason}")
        else:
            super().__init__(f"Could not store tip for fixture {fixture_id}: {reason}")
        self.fixture_id = fixture_id
        self.reason = reason


class ConcurrencyConflict(AutomationError):
    """A run was requested while the same job is already running."""

    def __init__(self, job_name: str):
        super().__init__(f"Job {job_name} is already running")
        self.job_name = job_name


class ConfigInvalid(AutomationError):
    """A configuration value cannot be parsed or is out of range."""

    def __init__(self, key: str, value: str | None, reason: str):
        super().__init__(f"Invalid value {value!r} for {key}: {reason}")
        self.key = key
        self.value = value
        self.reason = reason


class JobNotFound(AutomationError):
    """No job is registered under the requested name."""

    def __init__(self, job_name: str):
        super().__init__(f"Unknown job: {job_name}")
        self.job_name = job_name
