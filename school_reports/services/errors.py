class SchoolAccessDenied(PermissionError):
    """La scuola richiesta non e' tra quelle visibili all'utente."""

    def __init__(self, school_name: str):
        self.school_name = school_name
        super().__init__(f"You do not have access to school '{school_name}'")


class ReportSourceError(Exception):
    """Errore di rete/formato dalla sorgente dei report o delle statistiche."""


class ProfileNotFound(LookupError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Teacher profile '{user_id}' not found")


class DuplicateSchoolError(ValueError):
    def __init__(self, school_name: str):
        self.school_name = school_name
        super().__init__(f"{school_name} is already in the list of accessible schools")


class ReportsUnavailable(RuntimeError):
    """I report non sono caricati (loading o errore): serve attendere o fare retry."""
