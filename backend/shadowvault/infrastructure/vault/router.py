"""
ShieldedVault — Action Router for the confidential-position vault.

Single entry point per action category. Every action runs as one
all-or-nothing transaction against the caller's records and the vault
configuration.

Action Pipeline:
    ┌───────────────────────────────────────────────────────────────┐
    │ 1. Gates       operational? venue enabled? (admin: is admin?) │
    │ 2. Parameters  amounts, basis points, blob well-formedness    │
    │ 3. Legality    per-user state machine (loan, bridge, order…)  │
    │ 4. Numeric     fee split via the calculator                   │
    │ 5. Proofs      injected Verifier, then nullifier check-and-set│
    │ 6. Settlement  gates re-checked, counters merged, transfers   │
    │ 7. Publish     event log entry and receipt, then venue signal │
    └───────────────────────────────────────────────────────────────┘
    Steps 1-5 only touch staged copies. A VaultRevertError anywhere
    before the commit in step 6 drops the copies; nothing is written.

Concurrency:
    Steps 1-5 run under the caller's user lock only, against a config
    snapshot, so actions of different users proceed in parallel. Step 6
    and the event entry of step 7 run under the config lock: the gates
    are checked again on the live config and the body's counter deltas
    (TVL, positions, fees) are added to it, so no increment is lost and
    the event chain follows commit order. Lock order is fixed
    (user → config). Admin actions hold the config lock from start to
    commit. The venue signal goes out after both locks are released.

Usage:
    assets = InMemoryAssetLedger()
    vault = ShieldedVault(assets=assets)
    vault.initialize("admin", InitializeParams())
    receipt = vault.deposit("alice", DepositParams(
        amount=50_000_000_000, amount_commitment=c, blinding_factor=r,
    ))
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from shadowvault.core.accounting import apply_fee, require_amount, require_bps, split_by_weight
from shadowvault.core.config import Settings, settings as default_settings
from shadowvault.core.crypto.commitments import (
    require_commitment,
    require_proof,
    xor_commitments,
)
from shadowvault.core.crypto.nullifier_ledger import NullifierLedger
from shadowvault.core.crypto.verifier import ProofKind, StructuralVerifier, Verifier
from shadowvault.core.errors import (
    AttestationExpired,
    ComplianceRequired,
    InsufficientFunds,
    InsufficientShieldedBalance,
    InvalidParameter,
    InvalidProof,
    SlippageExceeded,
    VaultRevertError,
)
from shadowvault.infrastructure.blockchain.ledger import EventKind, VaultEventLog
from shadowvault.infrastructure.store import transitions
from shadowvault.infrastructure.store.position_store import PositionStore
from shadowvault.infrastructure.vault.admin import VaultController
from shadowvault.schemas.actions import (
    ActionReceipt,
    AdminAction,
    AdminControl,
    BridgeAction,
    BridgeParams,
    ComplianceAction,
    ComplianceParams,
    DepositParams,
    InitializeParams,
    LendAction,
    LendParams,
    SwapAction,
    SwapParams,
    SwapRoute,
    WithdrawParams,
    WithdrawType,
)
from shadowvault.schemas.state import (
    BridgeRequest,
    ComplianceAttestation,
    DarkPoolOrder,
    EncryptedPosition,
    LendingPosition,
    UserRecords,
    VaultConfig,
    Venue,
)
from shadowvault.services.asset_ledger import AssetLedger
from shadowvault.services.valuation import PositionView, accrue_view
from shadowvault.services.venues import VenueGateway, VenueOutbox, VenueSignal

logger = logging.getLogger(__name__)


ROUTE_VENUES: Dict[SwapRoute, List[Venue]] = {
    SwapRoute.VENUE_A: [Venue.SWAP_ROUTER],
    SwapRoute.DARK_POOL: [Venue.DARK_POOL],
    SwapRoute.SPLIT: [Venue.SWAP_ROUTER, Venue.DARK_POOL],
}


@dataclass
class _Outcome:
    """What a committed action publishes: event entry, venue signal, receipt."""
    kind: EventKind
    action: str
    commitment: str = ""
    venue: Optional[Venue] = None
    signal_payload: Dict[str, bytes] = field(default_factory=dict)
    net_amount: Optional[int] = None
    fee: Optional[int] = None
    status: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _Transaction:
    """Staged state for one action."""
    caller: str
    records: UserRecords
    config: VaultConfig  # snapshot; exclusive transactions commit it as is
    now: int
    gated_venues: Optional[List[Venue]] = None  # None: no operational gate (admin)
    compliance_gated: bool = False
    tvl_delta: int = 0
    positions_delta: int = 0
    fees_delta: int = 0
    consumed_nullifier: Optional[bytes] = None
    transfers: List[tuple] = field(default_factory=list)  # (source, dest, amount)
    outcome: Optional[_Outcome] = None
    receipt: Optional[ActionReceipt] = None
    signal: Optional[VenueSignal] = None


class ShieldedVault:
    """
    Confidential-position vault.

    Collaborators are injected so the core never reaches for ambient
    state: the asset ledger moves tokens, the verifier judges proofs,
    the venue gateway receives outbound signals and the clock supplies
    unix seconds.
    """

    def __init__(
        self,
        assets: AssetLedger,
        verifier: Optional[Verifier] = None,
        venues: Optional[VenueGateway] = None,
        event_log: Optional[VaultEventLog] = None,
        clock: Optional[Callable[[], int]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or default_settings
        self._assets = assets
        self._verifier = verifier or StructuralVerifier()
        self._venues = venues if venues is not None else VenueOutbox()
        self._events = event_log or VaultEventLog()
        self._clock = clock or (lambda: int(time.time()))

        self._controller = VaultController(max_yield_bps=self._settings.MAX_YIELD_BPS)
        self._store = PositionStore()
        self._nullifiers = NullifierLedger()
        self._vault_account = self._settings.VAULT_ACCOUNT

    # ── Accessors ──

    @property
    def controller(self) -> VaultController:
        return self._controller

    @property
    def store(self) -> PositionStore:
        return self._store

    @property
    def nullifiers(self) -> NullifierLedger:
        return self._nullifiers

    @property
    def event_log(self) -> VaultEventLog:
        return self._events

    @property
    def assets(self) -> AssetLedger:
        return self._assets

    @property
    def venues(self) -> VenueGateway:
        return self._venues

    @property
    def vault_account(self) -> str:
        return self._vault_account

    # ═══════════════════════════════════════════════════════════════════════════
    # TRANSACTION PLUMBING
    # ═══════════════════════════════════════════════════════════════════════════

    @contextmanager
    def _transaction(self, caller: str, action: str, exclusive: bool = False) -> Iterator[_Transaction]:
        """
        Stage the caller's records and a config snapshot, yield them to
        the action body, then settle, commit and publish.

        The body sets ``txn.outcome``; the method reads ``txn.receipt``
        once the block exits. With ``exclusive`` the config lock is held
        for the whole action and the staged config replaces the live one.
        """
        if not caller:
            raise InvalidParameter("caller identity must not be empty", {"field": "caller"})

        with self._store.lock_for(caller):
            with self._controller.lock if exclusive else nullcontext():
                txn = _Transaction(
                    caller=caller,
                    records=self._store.stage(caller),
                    config=self._controller.snapshot(),
                    now=self._clock(),
                )
                with self._reverting(txn, action):
                    yield txn

                with self._controller.lock:
                    with self._reverting(txn, action):
                        config = txn.config if exclusive else self._merge(txn)
                        self._settle(txn, config.shielded_asset)
                    self._store.commit(caller, txn.records)
                    self._controller.commit(config)
                    txn.receipt = self._record(txn, config)

        self._signal(txn)

    @contextmanager
    def _reverting(self, txn: _Transaction, action: str) -> Iterator[None]:
        """Log a failed action and give back its nullifier before re-raising."""
        try:
            yield
        except VaultRevertError as exc:
            self._release(txn)
            logger.warning(f"[VAULT] {action} reverted for {txn.caller}: [{exc.code}] {exc.reason}")
            raise
        except Exception:
            self._release(txn)
            logger.exception(f"[VAULT] {action} failed for {txn.caller}")
            raise

    def _release(self, txn: _Transaction) -> None:
        if txn.consumed_nullifier is not None:
            self._nullifiers.discard(txn.caller, txn.consumed_nullifier)

    def _merge(self, txn: _Transaction) -> VaultConfig:
        """
        Live config with the body's counter deltas applied. Call with
        the config lock held.

        Gates are evaluated again here: a pause or a venue toggle that
        landed while the body ran still rejects the action.
        """
        config = self._controller.stage()
        self._check_gates(txn, config)
        tvl = config.total_shielded_tvl + txn.tvl_delta
        if tvl < 0:
            raise InsufficientShieldedBalance(
                "vault cannot cover the requested amount",
                {"total_shielded_tvl": config.total_shielded_tvl},
            )
        config.total_shielded_tvl = tvl
        config.total_positions += txn.positions_delta
        config.accrued_fees += txn.fees_delta
        return config

    def _settle(self, txn: _Transaction, asset: str) -> None:
        """Pre-check every source balance, then execute the queued transfers."""
        needed: Dict[str, int] = {}
        for source, _, amount in txn.transfers:
            needed[source] = needed.get(source, 0) + amount
        for source, amount in needed.items():
            available = self._assets.balance_of(source, asset)
            if available < amount:
                raise InsufficientFunds(
                    f"{source} holds {available} {asset}, needs {amount}",
                    {"account": source, "asset": asset},
                )
        for source, dest, amount in txn.transfers:
            self._assets.transfer(asset, source, dest, amount)

    def _consume_nullifier(self, txn: _Transaction, nullifier: bytes) -> None:
        self._nullifiers.record(txn.caller, nullifier)
        txn.consumed_nullifier = nullifier

    def _verify(self, kind: ProofKind, proof: Optional[bytes], field_name: str) -> bytes:
        proof = require_proof(proof, field_name)
        if not self._verifier.verify(kind, proof):
            raise InvalidProof(f"{field_name} rejected by verifier", {"field": field_name})
        return proof

    # ── Gates ──

    def _gate(self, txn: _Transaction, venues: Sequence[Venue] = (), compliance: bool = False) -> None:
        """User-action gates, checked on the snapshot now and on the live config at commit."""
        txn.gated_venues = list(venues)
        txn.compliance_gated = compliance
        self._check_gates(txn, txn.config)

    def _check_gates(self, txn: _Transaction, config: VaultConfig) -> None:
        if txn.gated_venues is None:
            return
        self._controller.gate_operational(config)
        self._controller.gate_venues(config, txn.gated_venues)
        if txn.compliance_gated:
            self._gate_compliance(txn, config)

    def _gate_compliance(self, txn: _Transaction, config: VaultConfig) -> None:
        """Deposit/withdraw gate when the vault requires a valid attestation."""
        if not config.compliance_required:
            return
        att = txn.records.attestation
        if att is None or not att.is_valid:
            raise ComplianceRequired(
                "a valid compliance attestation is required", {"user": txn.caller},
            )
        if att.is_expired(txn.now):
            raise AttestationExpired(
                "compliance attestation expired",
                {"user": txn.caller, "expires_at": att.expires_at},
            )

    # ── Publish ──

    def _record(self, txn: _Transaction, config: VaultConfig) -> ActionReceipt:
        """Event entry and receipt for a committed action. Call with the config lock held."""
        outcome = txn.outcome
        metadata: Dict[str, Any] = {"action": outcome.action}
        if outcome.status is not None:
            metadata["status"] = outcome.status
        metadata.update(outcome.details)

        event = self._events.record(
            kind=outcome.kind,
            user=txn.caller,
            commitment=outcome.commitment,
            metadata=metadata,
            timestamp=txn.now,
        )

        if outcome.venue is not None and config.venue_enabled(outcome.venue):
            txn.signal = VenueSignal(
                venue=outcome.venue,
                action=outcome.action,
                user=txn.caller,
                payload=outcome.signal_payload,
                timestamp=txn.now,
            )

        logger.info(
            f"[VAULT] {outcome.action} committed — user={txn.caller} "
            f"tvl={config.total_shielded_tvl} positions={config.total_positions}"
        )

        return ActionReceipt(
            action=outcome.action,
            user=txn.caller,
            total_shielded_tvl=config.total_shielded_tvl,
            total_positions=config.total_positions,
            venue=outcome.venue,
            net_amount=outcome.net_amount,
            fee=outcome.fee,
            status=outcome.status,
            event_hash=event.entry_hash,
            timestamp=txn.now,
            details=outcome.details,
        )

    def _signal(self, txn: _Transaction) -> None:
        """Send the venue signal of a committed action; a gateway failure is only logged."""
        if txn.signal is None:
            return
        try:
            self._venues.signal(txn.signal)
        except Exception:
            logger.exception(
                f"[VENUE] {txn.signal.venue.value} signal for {txn.signal.action} "
                f"by {txn.caller} was not delivered"
            )

    # ═══════════════════════════════════════════════════════════════════════════
    # INITIALIZE
    # ═══════════════════════════════════════════════════════════════════════════

    def initialize(
        self,
        admin: str,
        params: InitializeParams,
        treasury: Optional[str] = None,
        shielded_asset: Optional[str] = None,
        secondary_asset: Optional[str] = None,
    ) -> VaultConfig:
        """Create the vault configuration with ``admin`` as its administrator."""
        now = self._clock()
        with self._controller.lock:
            config = self._controller.initialize(
                admin=admin,
                params=params,
                treasury=treasury or self._settings.VAULT_TREASURY,
                shielded_asset=shielded_asset or self._settings.SHIELDED_ASSET,
                secondary_asset=secondary_asset or self._settings.SECONDARY_ASSET,
                now=now,
            )
            self._events.record(
                kind=EventKind.INITIALIZE,
                user=admin,
                metadata={"action": "initialize", "venues": config.venue_flags()},
                timestamp=now,
            )
        return config

    # ═══════════════════════════════════════════════════════════════════════════
    # DEPOSIT / WITHDRAW
    # ═══════════════════════════════════════════════════════════════════════════

    def deposit(self, caller: str, params: DepositParams) -> ActionReceipt:
        """
        Shield ``params.amount`` into the caller's position.

        The gross amount leaves the caller's account: the net lands in
        the vault and the fee goes to the treasury. TVL grows by the net.
        """
        with self._transaction(caller, "deposit") as txn:
            config = txn.config
            self._gate(txn, compliance=True)

            require_amount(params.amount)
            if params.amount < self._settings.MIN_DEPOSIT:
                raise InvalidParameter(
                    f"deposit below minimum {self._settings.MIN_DEPOSIT}",
                    {"field": "amount", "min": self._settings.MIN_DEPOSIT},
                )
            net, fee = apply_fee(params.amount, config.deposit_fee_bps)

            amount_commitment = require_commitment(params.amount_commitment, "amount_commitment")
            blinding_factor = require_commitment(params.blinding_factor, "blinding_factor")

            created = transitions.credit_deposit(
                txn.records, caller, amount_commitment, blinding_factor, txn.now,
            )

            txn.tvl_delta += net
            txn.fees_delta += fee
            if created:
                txn.positions_delta += 1

            txn.transfers.append((caller, self._vault_account, net))
            txn.transfers.append((caller, config.treasury, fee))

            txn.outcome = _Outcome(
                EventKind.DEPOSIT, "deposit",
                commitment=amount_commitment.hex(),
                venue=Venue.PRIVATE_TRANSFER,
                signal_payload={"amount_commitment": amount_commitment},
                net_amount=net,
                fee=fee,
                details={"deposit_count": txn.records.position.deposit_count, "created": created},
            )
        return txn.receipt

    def withdraw(self, caller: str, params: WithdrawParams) -> ActionReceipt:
        """
        Unshield ``params.expected_amount`` from the caller's position.

        Consumes exactly one nullifier, whatever the withdrawal type. The
        net amount goes to the caller, the fee to the treasury, and TVL
        shrinks by the gross amount.
        """
        with self._transaction(caller, "withdraw") as txn:
            config = txn.config
            self._gate(txn, compliance=True)

            position = transitions.require_position(txn.records, caller)
            transitions.require_unencumbered(position)

            amount = require_amount(params.expected_amount, "expected_amount")
            if amount < self._settings.MIN_DEPOSIT:
                raise InvalidParameter(
                    f"withdrawal below minimum {self._settings.MIN_DEPOSIT}",
                    {"field": "expected_amount", "min": self._settings.MIN_DEPOSIT},
                )
            if amount > config.total_shielded_tvl:
                raise InsufficientShieldedBalance(
                    "vault cannot cover the requested amount",
                    {"requested": amount},
                )
            net, fee = apply_fee(amount, config.withdrawal_fee_bps)

            self._verify(ProofKind.WITHDRAWAL, params.withdrawal_proof, "withdrawal_proof")
            self._verify(ProofKind.OWNERSHIP, params.ownership_proof, "ownership_proof")
            nullifier = require_commitment(params.nullifier, "nullifier")
            remaining = None
            if params.withdraw_type is WithdrawType.PARTIAL:
                remaining = require_commitment(params.amount_commitment, "amount_commitment")

            transitions.debit_withdrawal(
                txn.records, params.withdraw_type, nullifier, txn.now, remaining,
            )
            txn.tvl_delta -= amount
            txn.fees_delta += fee

            self._consume_nullifier(txn, nullifier)

            txn.transfers.append((self._vault_account, caller, net))
            txn.transfers.append((self._vault_account, config.treasury, fee))

            txn.outcome = _Outcome(
                EventKind.WITHDRAW, "withdraw",
                commitment=nullifier.hex(),
                venue=Venue.PRIVATE_TRANSFER,
                signal_payload={"nullifier": nullifier},
                net_amount=net,
                fee=fee,
                details={
                    "withdraw_type": params.withdraw_type.value,
                    "withdrawal_count": txn.records.position.withdrawal_count,
                },
            )
        return txn.receipt

    # ═══════════════════════════════════════════════════════════════════════════
    # LENDING
    # ═══════════════════════════════════════════════════════════════════════════

    def lend(self, caller: str, params: LendParams) -> ActionReceipt:
        """Borrow, repay, liquidate or adjust collateral on the lending market."""
        action = params.action
        with self._transaction(caller, f"lend.{action.value}") as txn:
            self._gate(txn, [Venue.LENDING_MARKET])
            position = transitions.require_position(txn.records, caller)
            require_bps(params.interest_rate_bps, "interest_rate_bps")

            if action is LendAction.BORROW:
                collateral = require_commitment(params.collateral_commitment, "collateral_commitment")
                borrowed = require_commitment(params.borrow_commitment, "borrow_commitment")
                loan = transitions.borrow(
                    txn.records, collateral, borrowed, params.interest_rate_bps,
                    self._settings.LIQUIDATION_THRESHOLD_BPS, txn.now,
                )
                blob = borrowed
            elif action is LendAction.REPAY:
                blob = require_commitment(params.repayment_commitment, "repayment_commitment")
                loan = transitions.close_loan(txn.records, txn.now)
            elif action is LendAction.LIQUIDATE:
                loan = transitions.close_loan(txn.records, txn.now)
                blob = self._verify(ProofKind.LIQUIDATION, params.liquidation_proof, "liquidation_proof")
            else:
                blob = require_commitment(params.collateral_commitment, "collateral_commitment")
                loan = transitions.set_collateral(txn.records, blob, txn.now)

            transitions.touch(position, txn.now)

            txn.outcome = _Outcome(
                EventKind.LEND, f"lend.{action.value}",
                commitment=blob.hex(),
                venue=Venue.LENDING_MARKET,
                signal_payload={"commitment": blob},
                status="active" if loan.is_active else "inactive",
                details={"has_active_loan": position.has_active_loan},
            )
        return txn.receipt

    # ═══════════════════════════════════════════════════════════════════════════
    # SWAPS & DARK POOL
    # ═══════════════════════════════════════════════════════════════════════════

    def swap(self, caller: str, params: SwapParams) -> ActionReceipt:
        """Immediate swap or dark-pool order management."""
        action = params.action
        venues = ROUTE_VENUES[params.route] if action is SwapAction.EXECUTE else [Venue.DARK_POOL]
        with self._transaction(caller, f"swap.{action.value}") as txn:
            self._gate(txn, venues)
            position = transitions.require_position(txn.records, caller)

            details: Dict[str, Any] = {}
            if action is SwapAction.EXECUTE:
                require_bps(params.max_slippage_bps, "max_slippage_bps")
                if params.max_slippage_bps > self._settings.MAX_SLIPPAGE_BPS:
                    raise SlippageExceeded(
                        f"max slippage above {self._settings.MAX_SLIPPAGE_BPS} bps",
                        {"max_slippage_bps": params.max_slippage_bps},
                    )
                if params.route is SwapRoute.SPLIT:
                    venue_a, dark_pool = split_by_weight(10_000, params.split_weight_bps)
                    details["split_bps"] = {"venue_a": venue_a, "dark_pool": dark_pool}
                amount_in = require_commitment(params.amount_in_commitment, "amount_in_commitment")
                min_out = require_commitment(params.min_out_commitment, "min_out_commitment")
                transitions.execute_swap(txn.records, amount_in, min_out)
                status = None
                payload = {"amount_in_commitment": amount_in, "min_out_commitment": min_out}
                commitment = xor_commitments(amount_in, min_out).hex()

            elif action is SwapAction.PLACE_LIMIT_ORDER:
                amount_in = require_commitment(params.amount_in_commitment, "amount_in_commitment")
                price = require_commitment(params.limit_price_commitment, "limit_price_commitment")
                order = transitions.place_limit_order(txn.records, params.side, amount_in, price, txn.now)
                status = order.status.value
                details["side"] = order.side.value
                payload = {"amount_commitment": amount_in, "price_commitment": price}
                commitment = amount_in.hex()

            else:
                if action is SwapAction.CANCEL_ORDER:
                    order = transitions.cancel_order(txn.records, txn.now)
                else:
                    order = transitions.match_order(txn.records, txn.now)
                status = order.status.value
                payload = {"amount_commitment": order.encrypted_amount.commitment}
                commitment = order.encrypted_amount.commitment.hex()

            self._verify(ProofKind.SWAP, params.proof, "proof")
            transitions.touch(position, txn.now)

            txn.outcome = _Outcome(
                EventKind.SWAP, f"swap.{action.value}",
                commitment=commitment,
                venue=venues[0] if len(venues) == 1 else Venue.SWAP_ROUTER,
                signal_payload=payload,
                status=status,
                details=details,
            )
        return txn.receipt

    def report_partial_fill(self, user: str) -> ActionReceipt:
        """Dark-pool venue callback: the user's open order was partially filled."""
        with self._transaction(user, "swap.partial_fill") as txn:
            self._gate(txn, [Venue.DARK_POOL])
            transitions.require_position(txn.records, user)
            order = transitions.fill_order_partially(txn.records, txn.now)

            txn.outcome = _Outcome(
                EventKind.SWAP, "swap.partial_fill",
                commitment=order.encrypted_amount.commitment.hex(),
                status=order.status.value,
            )
        return txn.receipt

    # ═══════════════════════════════════════════════════════════════════════════
    # BRIDGE
    # ═══════════════════════════════════════════════════════════════════════════

    def bridge(self, caller: str, params: BridgeParams) -> ActionReceipt:
        """
        Outbound/inbound cross-chain transfers through the bridge relay.

        The request state is checked before any proof, so a caller with a
        pending request is told so even when the proof is bad.
        """
        action = params.action
        with self._transaction(caller, f"bridge.{action.value}") as txn:
            self._gate(txn, [Venue.BRIDGE_RELAY])
            position = transitions.require_position(txn.records, caller)

            if action is BridgeAction.INITIATE_OUTBOUND:
                amount = require_commitment(params.amount_commitment, "amount_commitment")
                request = transitions.initiate_bridge(txn.records, params.dest_chain, amount, txn.now)
                self._verify(ProofKind.BRIDGE, params.bridge_proof, "bridge_proof")
            elif action is BridgeAction.CLAIM_INBOUND:
                amount = require_commitment(params.amount_commitment, "amount_commitment")
                request = transitions.claim_inbound(txn.records, amount, txn.now)
                self._verify(ProofKind.BRIDGE, params.bridge_proof, "bridge_proof")
                self._verify(ProofKind.INBOUND, params.inbound_proof, "inbound_proof")
            elif action is BridgeAction.CANCEL_REQUEST:
                request = transitions.cancel_bridge(txn.records, txn.now)
                amount = request.amount_commitment
                self._verify(ProofKind.BRIDGE, params.bridge_proof, "bridge_proof")
            else:
                request = transitions.verify_bridge_completion(txn.records, txn.now)
                amount = request.amount_commitment
                self._verify(ProofKind.BRIDGE, params.bridge_proof, "bridge_proof")

            transitions.touch(position, txn.now)

            details: Dict[str, Any] = {"has_pending_bridge": position.has_pending_bridge}
            if request is not None:
                details["dest_chain_id"] = request.dest_chain_id
            else:
                details["source_chain_id"] = params.dest_chain.chain_id
            txn.outcome = _Outcome(
                EventKind.BRIDGE, f"bridge.{action.value}",
                commitment=amount.hex(),
                venue=Venue.BRIDGE_RELAY,
                signal_payload={"amount_commitment": amount},
                status=request.status.value if request is not None else None,
                details=details,
            )
        return txn.receipt

    # ═══════════════════════════════════════════════════════════════════════════
    # COMPLIANCE
    # ═══════════════════════════════════════════════════════════════════════════

    def compliance(self, caller: str, params: ComplianceParams) -> ActionReceipt:
        """
        Submit, verify, revoke or renew the caller's compliance attestation.

        Does not require an existing position, so a user can attest
        before a first deposit into a vault that requires compliance.
        """
        action = params.action
        with self._transaction(caller, f"compliance.{action.value}") as txn:
            self._gate(txn, [Venue.COMPLIANCE_ORACLE])

            if action is not ComplianceAction.REVOKE:
                max_days = self._settings.MAX_VALIDITY_DAYS
                if not 1 <= params.validity_days <= max_days:
                    raise InvalidParameter(
                        f"validity_days must be within 1..{max_days}",
                        {"field": "validity_days", "value": params.validity_days},
                    )

            provider = Venue.COMPLIANCE_ORACLE.value
            max_risk = self._settings.MAX_RISK_SCORE
            if action is ComplianceAction.SUBMIT:
                digest = require_commitment(params.attestation_hash, "attestation_hash")
                att = transitions.submit_attestation(
                    txn.records, caller, provider, digest, params.validity_days, max_risk, txn.now,
                )
            elif action is ComplianceAction.RENEW:
                digest = require_commitment(params.attestation_hash, "attestation_hash")
                att = transitions.renew_attestation(
                    txn.records, caller, provider, digest, params.validity_days, max_risk, txn.now,
                )
            elif action is ComplianceAction.VERIFY:
                att = transitions.verify_attestation(txn.records, caller, params.validity_days, txn.now)
            else:
                att = transitions.revoke_attestation(txn.records, caller)

            self._verify(ProofKind.DISCLOSURE, params.disclosure_proof, "disclosure_proof")
            if txn.records.position is not None:
                txn.records.position.last_action_at = txn.now

            txn.outcome = _Outcome(
                EventKind.COMPLIANCE, f"compliance.{action.value}",
                commitment=att.attestation_hash.hex(),
                venue=Venue.COMPLIANCE_ORACLE,
                signal_payload={"attestation_hash": att.attestation_hash},
                status="valid" if att.is_valid else "revoked",
                details={"risk_score": att.risk_score, "expires_at": att.expires_at},
            )
        return txn.receipt

    # ═══════════════════════════════════════════════════════════════════════════
    # ADMIN
    # ═══════════════════════════════════════════════════════════════════════════

    def admin_control(self, caller: str, control: AdminControl) -> ActionReceipt:
        """Admin-only configuration change. Not subject to the pause gate."""
        action = f"admin.{control.action.value}"
        with self._transaction(caller, action, exclusive=True) as txn:
            self._controller.gate_admin(txn.config, caller)
            changes = self._controller.apply_control(txn.config, control, txn.now)
            if control.action is AdminAction.DEPOSIT_REWARDS:
                txn.transfers.append((caller, self._vault_account, control.amount))

            txn.outcome = _Outcome(EventKind.ADMIN, action, details={"changes": changes})
        return txn.receipt

    # ═══════════════════════════════════════════════════════════════════════════
    # READ-ONLY QUERIES (never gated by pause)
    # ═══════════════════════════════════════════════════════════════════════════

    def config(self) -> VaultConfig:
        return self._controller.snapshot()

    def records(self, user: str) -> Optional[UserRecords]:
        return self._store.get(user)

    def position(self, user: str) -> Optional[EncryptedPosition]:
        records = self._store.get(user)
        return records.position if records else None

    def lending_position(self, user: str) -> Optional[LendingPosition]:
        records = self._store.get(user)
        return records.loan if records else None

    def bridge_request(self, user: str) -> Optional[BridgeRequest]:
        records = self._store.get(user)
        return records.bridge if records else None

    def order(self, user: str) -> Optional[DarkPoolOrder]:
        records = self._store.get(user)
        return records.order if records else None

    def attestation(self, user: str) -> Optional[ComplianceAttestation]:
        records = self._store.get(user)
        return records.attestation if records else None

    def accrue_view(self, user: str) -> PositionView:
        """Valuation view of ``user``'s position (see services.valuation)."""
        config = self._controller.snapshot()
        records = self._store.get(user) or UserRecords()
        transitions.require_position(records, user)
        return accrue_view(config, records, self._clock())

    def nullifier_consumed(self, user: str, nullifier: bytes) -> bool:
        return self._nullifiers.contains(user, nullifier)
