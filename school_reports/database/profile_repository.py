from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

class ProfileRepository(ABC):

    @abstractmethod
    async def get_accessible_schools(self, user_id: str) -> Optional[list[str]]:
        """Ritorna la lista accessible_schools, None se il profilo non esiste o il campo e' nullo."""
        raise NotImplementedError

    # Gestione accessi (admin)
    @abstractmethod
    async def list_teachers(self) -> list[dict]:
        """Ritorna: { id, email, full_name, accessible_schools }"""
        raise NotImplementedError

    @abstractmethod
    async def get_teacher(self, user_id: str) -> Optional[dict]:
        """Ritorna: { id, email, full_name, accessible_schools } oppure None"""
        raise NotImplementedError

    @abstractmethod
    async def set_accessible_schools(self, user_id: str, schools: list[str]) -> bool:
        """Sostituisce la lista; False se il docente non esiste."""
        raise NotImplementedError

    @abstractmethod
    async def add_accessible_school(self, user_id: str, school: str) -> Optional[list[str]]:
        """Aggiunge la scuola in modo atomico; None se il docente non esiste o la scuola c'e' gia'."""
        raise NotImplementedError

    @abstractmethod
    async def remove_accessible_school(self, user_id: str, school: str) -> Optional[list[str]]:
        """Rimuove la scuola in modo atomico; None se il docente non esiste."""
        raise NotImplementedError
