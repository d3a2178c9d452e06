"""Domain errors. All are ValueError subclasses so callers can treat them as bad input."""


class SessionLockedError(ValueError):
    """A structural card edit was attempted on a locked session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} is locked")
        self.session_id = session_id


class LastSessionError(ValueError):
    """Removing the session would leave its module with none."""

    def __init__(self, module_id: str) -> None:
        super().__init__("A module must have at least one session.")
        self.module_id = module_id


class BackupError(ValueError):
    """A backup file failed validation; nothing was imported."""
