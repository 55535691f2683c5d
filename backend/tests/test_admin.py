import pytest

from conftest import ADMIN, ALICE, ASSET, FUNDING, blob
from shadowvault.core.errors import (
    AlreadyInitialized,
    InvalidParameter,
    NotInitialized,
    Unauthorized,
    VaultPaused,
    VenueDisabled,
)
from shadowvault.infrastructure.vault.admin import VaultController
from shadowvault.schemas.actions import (
    AdminAction,
    AdminControl,
    DepositParams,
    InitializeParams,
    SwapAction,
    SwapParams,
)
from shadowvault.schemas.state import Venue

NOW = 1_700_000_000


@pytest.fixture
def controller():
    c = VaultController(max_yield_bps=5_000)
    c.initialize("admin", InitializeParams(), "treasury", "wSOL", "USDC", NOW)
    return c


def _apply(controller, **kwargs):
    with controller.lock:
        config = controller.stage()
        changes = controller.apply_control(config, AdminControl(**kwargs), NOW + 100)
        controller.commit(config)
    return changes

# ═══════════════════════════════════════════════════════════════════════════════
# LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════════════

def test_initialize_defaults(controller):
    config = controller.snapshot()
    assert config.admin == "admin"
    assert config.deposit_fee_bps == 10
    assert config.current_yield_bps == 500
    assert config.total_shielded_tvl == 0
    assert config.initialized_at == NOW
    assert all(config.venue_flags().values())


def test_initialize_only_once(controller):
    with pytest.raises(AlreadyInitialized):
        controller.initialize("other", InitializeParams(), "treasury", "wSOL", "USDC", NOW)


def test_initialize_rejects_bad_rates_and_identities():
    c = VaultController()
    with pytest.raises(InvalidParameter):
        c.initialize("admin", InitializeParams(swap_fee_bps=10_001), "t", "wSOL", "USDC", NOW)
    with pytest.raises(InvalidParameter):
        c.initialize("admin", InitializeParams(), "", "wSOL", "USDC", NOW)
    assert not c.is_initialized


def test_uninitialized_snapshot():
    with pytest.raises(NotInitialized):
        VaultController().snapshot()


def test_snapshot_is_a_copy(controller):
    controller.snapshot().is_paused = True
    assert controller.snapshot().is_paused is False

# ═══════════════════════════════════════════════════════════════════════════════
# GATES
# ═══════════════════════════════════════════════════════════════════════════════

def test_gates(controller):
    config = controller.snapshot()
    VaultController.gate_operational(config)
    VaultController.gate_admin(config, "admin")
    with pytest.raises(Unauthorized):
        VaultController.gate_admin(config, "mallory")

    config.dark_pool_enabled = False
    VaultController.gate_venues(config, [Venue.SWAP_ROUTER])
    with pytest.raises(VenueDisabled):
        VaultController.gate_venues(config, [Venue.SWAP_ROUTER, Venue.DARK_POOL])

    config.emergency_mode = True
    with pytest.raises(VaultPaused):
        VaultController.gate_operational(config)

# ═══════════════════════════════════════════════════════════════════════════════
# ADMIN ACTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def test_set_paused_is_idempotent(controller):
    _apply(controller, action=AdminAction.SET_PAUSED, paused=True)
    _apply(controller, action=AdminAction.SET_PAUSED, paused=True)
    assert controller.snapshot().is_paused
    _apply(controller, action=AdminAction.SET_PAUSED, paused=False)
    assert not controller.snapshot().is_paused


def test_emergency_mode_also_pauses(controller):
    changes = _apply(controller, action=AdminAction.SET_EMERGENCY_MODE, enabled=True)
    config = controller.snapshot()
    assert config.emergency_mode and config.is_paused
    assert changes == {"emergency_mode": True, "is_paused": True}

    # clearing emergency mode leaves the pause switch to the admin
    _apply(controller, action=AdminAction.SET_EMERGENCY_MODE, enabled=False)
    config = controller.snapshot()
    assert not config.emergency_mode and config.is_paused


def test_update_fees_is_partial(controller):
    changes = _apply(controller, action=AdminAction.UPDATE_FEES, swap_fee_bps=75)
    config = controller.snapshot()
    assert changes == {"swap_fee_bps": 75}
    assert config.swap_fee_bps == 75
    assert config.deposit_fee_bps == 10
    assert config.bridge_fee_bps == 25


def test_update_fees_rejects_before_assigning(controller):
    with controller.lock:
        config = controller.stage()
        with pytest.raises(InvalidParameter):
            controller.apply_control(
                config,
                AdminControl(action=AdminAction.UPDATE_FEES, deposit_fee_bps=20, swap_fee_bps=20_000),
                NOW,
            )
        assert config.deposit_fee_bps == 10


def test_toggle_sdk_is_partial(controller):
    _apply(controller, action=AdminAction.TOGGLE_SDK, dark_pool_enabled=False)
    flags = controller.snapshot().venue_flags()
    assert flags["dark_pool"] is False
    assert sum(1 for v in flags.values() if v) == 6


def test_update_yield_rate(controller):
    _apply(controller, action=AdminAction.UPDATE_YIELD_RATE, new_rate_bps=800)
    config = controller.snapshot()
    assert config.current_yield_bps == 800
    assert config.last_yield_update == NOW + 100

    with pytest.raises(InvalidParameter):
        _apply(controller, action=AdminAction.UPDATE_YIELD_RATE, new_rate_bps=5_001)
    with pytest.raises(InvalidParameter):
        _apply(controller, action=AdminAction.UPDATE_YIELD_RATE)


def test_deposit_rewards_and_compliance_switch(controller):
    _apply(controller, action=AdminAction.DEPOSIT_REWARDS, amount=1_000)
    assert controller.snapshot().total_shielded_tvl == 1_000
    with pytest.raises(InvalidParameter):
        _apply(controller, action=AdminAction.DEPOSIT_REWARDS, amount=0)

    _apply(controller, action=AdminAction.SET_COMPLIANCE_REQUIRED, required=True)
    assert controller.snapshot().compliance_required
    with pytest.raises(InvalidParameter):
        _apply(controller, action=AdminAction.SET_COMPLIANCE_REQUIRED)

# ═══════════════════════════════════════════════════════════════════════════════
# THROUGH THE VAULT
# ═══════════════════════════════════════════════════════════════════════════════

def test_non_admin_rejected(vault):
    with pytest.raises(Unauthorized):
        vault.admin_control(ALICE, AdminControl(action=AdminAction.SET_PAUSED, paused=True))
    assert not vault.config().is_paused


def test_pause_blocks_actions_but_not_admin(vault):
    vault.admin_control(ADMIN, AdminControl(action=AdminAction.SET_PAUSED, paused=True))
    with pytest.raises(VaultPaused):
        vault.deposit(ALICE, DepositParams(
            amount=10_000_000_000, amount_commitment=blob(1), blinding_factor=blob(2),
        ))
    vault.admin_control(ADMIN, AdminControl(action=AdminAction.SET_PAUSED, paused=False))
    vault.deposit(ALICE, DepositParams(
        amount=10_000_000_000, amount_commitment=blob(1), blinding_factor=blob(2),
    ))


def test_disabled_venue_blocks_route(vault):
    vault.deposit(ALICE, DepositParams(
        amount=10_000_000_000, amount_commitment=blob(1), blinding_factor=blob(2),
    ))
    vault.admin_control(ADMIN, AdminControl(action=AdminAction.TOGGLE_SDK, swap_router_enabled=False))
    with pytest.raises(VenueDisabled):
        vault.swap(ALICE, SwapParams(
            action=SwapAction.EXECUTE, proof=blob(3),
            amount_in_commitment=blob(4), min_out_commitment=blob(5),
        ))


def test_deposit_rewards_moves_admin_funds(vault):
    vault.admin_control(ADMIN, AdminControl(action=AdminAction.DEPOSIT_REWARDS, amount=5_000_000))
    assert vault.config().total_shielded_tvl == 5_000_000
    assert vault.assets.balance_of(vault.vault_account, ASSET) == 5_000_000
    assert vault.assets.balance_of(ADMIN, ASSET) == FUNDING - 5_000_000
