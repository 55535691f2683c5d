"""
Vault Configuration & Admin Control.

Owns the single ``VaultConfig`` aggregate of one vault and the gates
every action passes before it may touch per-user records.

Gate Order (user actions):
    ┌──────────────────────────┐
    │ Gate 1: Operational      │──→ not paused, not in emergency mode
    │ Gate 2: Venue enabled    │──→ feature flag for the routed venue
    └──────────────────────────┘
    If ANY gate fails → VaultRevertError (action rejected, nothing written)

Admin actions skip Gate 1 (an admin must be able to unpause) and
instead require the caller to be the stored admin identity.

The configuration is owned by the vault instance and passed around
explicitly. There is no process-wide singleton.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from shadowvault.core.accounting import require_bps
from shadowvault.core.errors import (
    AlreadyInitialized,
    InvalidParameter,
    NotInitialized,
    Unauthorized,
    VaultPaused,
    VenueDisabled,
)
from shadowvault.schemas.actions import AdminAction, AdminControl, InitializeParams
from shadowvault.schemas.state import VaultConfig, Venue

logger = logging.getLogger(__name__)


FEE_FIELDS = (
    "deposit_fee_bps",
    "withdrawal_fee_bps",
    "lending_fee_bps",
    "swap_fee_bps",
    "bridge_fee_bps",
)

VENUE_FIELDS = tuple(v.flag for v in Venue)


class VaultController:
    """
    Holder of the vault configuration.

    User actions read a ``snapshot`` without holding ``lock`` for their
    body. The router takes ``lock`` only for the commit phase, where it
    re-runs the gates on a fresh ``stage`` and adds the action's counter
    deltas, so aggregate counters (TVL, position count, fees) are updated
    serially and never lose an increment. Admin actions hold ``lock``
    from stage to commit.

    Usage:
        controller = VaultController(max_yield_bps=5000)
        controller.initialize("admin", InitializeParams(), "treasury", "wSOL", "USDC", now)
        with controller.lock:
            config = controller.stage()
            controller.gate_operational(config)
            config.total_shielded_tvl += net
            controller.commit(config)
    """

    def __init__(self, max_yield_bps: int = 5_000) -> None:
        self._config: Optional[VaultConfig] = None
        self._max_yield_bps = max_yield_bps
        self.lock = threading.RLock()

    # ── Lifecycle ──

    @property
    def is_initialized(self) -> bool:
        return self._config is not None

    def initialize(
        self,
        admin: str,
        params: InitializeParams,
        treasury: str,
        shielded_asset: str,
        secondary_asset: str,
        now: int,
    ) -> VaultConfig:
        """
        Create the vault configuration. Allowed exactly once.

        Raises:
            AlreadyInitialized: Configuration already exists.
            InvalidParameter: A rate is outside [0, 10000] or an identity is empty.
        """
        with self.lock:
            if self._config is not None:
                raise AlreadyInitialized("vault already initialized")

            for name, value in (("admin", admin), ("treasury", treasury),
                                ("shielded_asset", shielded_asset),
                                ("secondary_asset", secondary_asset)):
                if not value:
                    raise InvalidParameter(f"{name} must not be empty", {"field": name})

            for name in FEE_FIELDS:
                require_bps(getattr(params, name), name)
            require_bps(params.initial_yield_bps, "initial_yield_bps")

            self._config = VaultConfig(
                admin=admin,
                treasury=treasury,
                shielded_asset=shielded_asset,
                secondary_asset=secondary_asset,
                deposit_fee_bps=params.deposit_fee_bps,
                withdrawal_fee_bps=params.withdrawal_fee_bps,
                lending_fee_bps=params.lending_fee_bps,
                swap_fee_bps=params.swap_fee_bps,
                bridge_fee_bps=params.bridge_fee_bps,
                current_yield_bps=params.initial_yield_bps,
                compliance_required=params.compliance_required,
                initialized_at=now,
                last_yield_update=now,
                **{name: getattr(params, name) for name in VENUE_FIELDS},
            )
            logger.info(
                f"[ADMIN] Vault initialized — admin={admin} asset={shielded_asset} "
                f"yield={params.initial_yield_bps}bps"
            )
            return self._config.model_copy(deep=True)

    # ── Staging ──

    def snapshot(self) -> VaultConfig:
        """Read-only copy of the current configuration."""
        with self.lock:
            return self._require().model_copy(deep=True)

    def stage(self) -> VaultConfig:
        """Working copy for an action. Call with ``lock`` held."""
        return self._require().model_copy(deep=True)

    def commit(self, config: VaultConfig) -> None:
        """Replace the configuration. Call with ``lock`` held."""
        self._config = config

    def _require(self) -> VaultConfig:
        if self._config is None:
            raise NotInitialized("vault has not been initialized")
        return self._config

    # ── Gates ──

    @staticmethod
    def gate_operational(config: VaultConfig) -> None:
        if not config.is_operational:
            raise VaultPaused(
                "vault is paused" if not config.emergency_mode else "vault is in emergency mode",
                {"is_paused": config.is_paused, "emergency_mode": config.emergency_mode},
            )

    @staticmethod
    def gate_venues(config: VaultConfig, venues: List[Venue]) -> None:
        for venue in venues:
            if not config.venue_enabled(venue):
                raise VenueDisabled(f"{venue.value} is disabled", {"venue": venue.value})

    @staticmethod
    def gate_admin(config: VaultConfig, caller: str) -> None:
        if caller != config.admin:
            logger.warning(f"[ADMIN] Unauthorized admin attempt by {caller}")
            raise Unauthorized("caller is not the vault admin", {"caller": caller})

    # ── Admin Actions ──

    def apply_control(self, config: VaultConfig, control: AdminControl, now: int) -> Dict[str, object]:
        """
        Apply one admin action to a staged configuration.

        Every bound is checked before the first field is assigned, so a
        rejected partial update leaves ``config`` untouched.

        Returns:
            The fields that changed (name → new value), for the event log.
        """
        action = control.action
        changes: Dict[str, object] = {}

        if action is AdminAction.DEPOSIT_REWARDS:
            if control.amount is None or control.amount <= 0:
                raise InvalidParameter("reward amount must be positive", {"field": "amount"})
            config.total_shielded_tvl += control.amount
            changes["total_shielded_tvl"] = config.total_shielded_tvl

        elif action is AdminAction.UPDATE_YIELD_RATE:
            if control.new_rate_bps is None:
                raise InvalidParameter("new_rate_bps is required", {"field": "new_rate_bps"})
            require_bps(control.new_rate_bps, "new_rate_bps")
            if control.new_rate_bps > self._max_yield_bps:
                raise InvalidParameter(
                    f"yield rate above cap {self._max_yield_bps}",
                    {"field": "new_rate_bps", "value": control.new_rate_bps},
                )
            config.current_yield_bps = control.new_rate_bps
            config.last_yield_update = now
            changes["current_yield_bps"] = control.new_rate_bps

        elif action is AdminAction.TOGGLE_SDK:
            for name in VENUE_FIELDS:
                value = getattr(control, name)
                if value is not None:
                    setattr(config, name, value)
                    changes[name] = value

        elif action is AdminAction.SET_EMERGENCY_MODE:
            if control.enabled is None:
                raise InvalidParameter("enabled is required", {"field": "enabled"})
            config.emergency_mode = control.enabled
            changes["emergency_mode"] = control.enabled
            if control.enabled:
                config.is_paused = True
                changes["is_paused"] = True
            logger.warning(f"[ADMIN] Emergency mode {'ENABLED' if control.enabled else 'disabled'}")

        elif action is AdminAction.SET_PAUSED:
            if control.paused is None:
                raise InvalidParameter("paused is required", {"field": "paused"})
            config.is_paused = control.paused
            changes["is_paused"] = control.paused
            logger.warning(f"[ADMIN] Vault {'PAUSED' if control.paused else 'unpaused'}")

        elif action is AdminAction.UPDATE_FEES:
            updates = {
                name: getattr(control, name)
                for name in FEE_FIELDS
                if getattr(control, name) is not None
            }
            for name, value in updates.items():
                require_bps(value, name)
            for name, value in updates.items():
                setattr(config, name, value)
            changes.update(updates)

        elif action is AdminAction.SET_COMPLIANCE_REQUIRED:
            if control.required is None:
                raise InvalidParameter("required flag is missing", {"field": "required"})
            config.compliance_required = control.required
            changes["compliance_required"] = control.required

        return changes
