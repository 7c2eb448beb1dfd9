"""
Wallet Model
============

A wallet is a tracked address plus its classification role and the binding
that links it to a rented machine.

Binding lifecycle:
  Unbound ──assign──▶ Pending ──first liveness report──▶ Active

Pending and Active carry the same BindingPayload (order, server, SSH endpoint).
"""

from __future__ import annotations
import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Timezone-aware current UTC time. Default clock for every component."""
    return datetime.now(timezone.utc)


# ─── Role ─────────────────────────────────────────────────────────────────────

class Role(str, enum.Enum):
    MASTER       = "MASTER"
    SUB          = "SUB"
    UNCLASSIFIED = "UNCLASSIFIED"   # Never stored in the registry


# ─── Binding ──────────────────────────────────────────────────────────────────

class BindingState(str, enum.Enum):
    UNBOUND = "UNBOUND"
    PENDING = "PENDING"
    ACTIVE  = "ACTIVE"


@dataclass(frozen=True)
class BindingPayload:
    order_id:           int
    server_id:          int
    connection_address: Optional[str] = None   # SSH host of the rented machine
    connection_port:    Optional[int] = None   # SSH port mapped to 22

    def to_dict(self) -> dict:
        return {
            "order_id":           self.order_id,
            "server_id":          self.server_id,
            "connection_address": self.connection_address,
            "connection_port":    self.connection_port,
        }


@dataclass(frozen=True)
class Unbound:
    state = BindingState.UNBOUND

    @property
    def payload(self) -> None:
        return None


@dataclass(frozen=True)
class Pending:
    """Order created, waiting for the machine's first liveness report."""
    payload: BindingPayload
    state = BindingState.PENDING


@dataclass(frozen=True)
class Active:
    """At least one liveness report has been received."""
    payload: BindingPayload
    state = BindingState.ACTIVE


Binding = Union[Unbound, Pending, Active]


# ─── Wallet ───────────────────────────────────────────────────────────────────

@dataclass
class Wallet:
    address:          str
    role:             Role
    start_time:       Optional[datetime] = None   # Set when a binding is created
    last_report_time: Optional[datetime] = None
    binding:          Binding = field(default_factory=Unbound)

    @property
    def state(self) -> BindingState:
        return self.binding.state

    def copy(self) -> "Wallet":
        # Bindings are frozen, so a shallow copy is a full snapshot
        return replace(self)

    def to_dict(self) -> dict:
        payload = self.binding.payload
        return {
            "address":          self.address,
            "role":             self.role.value,
            "state":            self.state.value,
            "start_time":       self.start_time.isoformat() if self.start_time else None,
            "last_report_time": self.last_report_time.isoformat() if self.last_report_time else None,
            "binding":          payload.to_dict() if payload else None,
        }
