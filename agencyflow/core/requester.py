"""Requester identity passed into every core operation."""

from __future__ import annotations

from dataclasses import dataclass

from agencyflow.models.user import ROLE_ADMIN, ROLE_CLIENT, ROLE_CONTROLLER


@dataclass(frozen=True)
class Requester:
    """Authenticated caller: user id plus role, as issued by the auth gateway."""

    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_controller(self) -> bool:
        return self.role == ROLE_CONTROLLER

    @property
    def is_client(self) -> bool:
        return self.role == ROLE_CLIENT
