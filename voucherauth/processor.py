"""
Voucher Processor

The verify-and-apply pipeline for creation and advancement vouchers.

Check order for creation:
    signature -> authority -> sequence freshness -> expiry
Check order for advancement:
    item existence -> signature -> authority -> expiry -> stage freshness

Any failure aborts the whole operation with no effect on the registry,
counters or stages. On success exactly one state change is made and exactly
one event is emitted.

Consumption, the registry write and the event append run inside the replay
store's atomic scope. A failure of any kind inside it, including
KeyboardInterrupt, undoes the registry write and the consumption before the
scope exits; transactional stores additionally roll the whole scope back.

Expiry rule: a voucher is valid while now < expires_at. At the deadline
second itself it is already expired.
"""

from typing import Callable, Optional

from .domain import VoucherDomain
from .errors import FailureCode, UnauthorizedSigner, UnknownItem, VoucherError, VoucherExpired
from .events import EventSink, InMemoryEventLog, ItemAdvanced, ItemCreated
from .hashing import Voucher, voucher_digest
from .logging_config import audit_log
from .registry import ItemRegistry
from .replay import InMemoryReplayStore, ReplayGuard, ReplayStore
from .roles import TrustOracle
from .signing import SignatureInput, recover_signer
from .util import bytes_to_hex, is_zero_address, now_epoch
from .vouchers import AdvancementVoucher, CreationVoucher

SECURITY_FAILURES = (
    FailureCode.MALFORMED_SIGNATURE,
    FailureCode.INVALID_SIGNATURE_ENCODING,
    FailureCode.UNAUTHORIZED_SIGNER,
)


class VoucherProcessor:
    """
    Verifies vouchers and applies their transitions exactly once.

    Usage:
        processor = VoucherProcessor(domain, registry, TrustOracle(roles))

        signer = processor.verify_creation_voucher(voucher, signature)
        event = processor.apply_creation(voucher, signature)

        next_seq = processor.current_sequence(recipient)
    """

    def __init__(
        self,
        domain: VoucherDomain,
        registry: ItemRegistry,
        trust_oracle: TrustOracle,
        replay_store: Optional[ReplayStore] = None,
        event_sink: Optional[EventSink] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.domain = domain
        self.registry = registry
        self.trust_oracle = trust_oracle
        self.replay = ReplayGuard(replay_store or InMemoryReplayStore())
        self.events = event_sink or InMemoryEventLog()
        self.clock = clock or now_epoch

    # ------------------------------------------------------------------
    # Pure verification
    # ------------------------------------------------------------------

    def verify_creation_voucher(self, voucher: CreationVoucher, signature: SignatureInput) -> str:
        """Recover the signer of a creation voucher. No state is read or written."""
        return self._recover(voucher, signature)

    def verify_advancement_voucher(self, voucher: AdvancementVoucher, signature: SignatureInput) -> str:
        """Recover the signer of an advancement voucher. No state is read or written."""
        return self._recover(voucher, signature)

    def _recover(self, voucher: Voucher, signature: SignatureInput) -> str:
        signer = recover_signer(voucher_digest(self.domain, voucher), signature)
        if is_zero_address(signer):
            raise UnauthorizedSigner(
                "signature recovers to the zero address",
                required="non-zero signer",
                observed=signer,
            )
        return signer

    # ------------------------------------------------------------------
    # Checked transitions
    # ------------------------------------------------------------------

    def apply_creation(self, voucher: CreationVoucher, signature: SignatureInput) -> ItemCreated:
        """Consume a creation voucher and create one item for its recipient."""
        digest = bytes_to_hex(voucher_digest(self.domain, voucher))
        audit_log.voucher_submitted(
            "creation", digest, recipient=voucher.recipient, sequence=voucher.sequence
        )

        try:
            signer = self._recover(voucher, signature)
            self._authorize(signer)

            with self.replay.recipient_lock(voucher.recipient):
                self.replay.check_sequence(voucher)
                self._check_expiry(voucher)

                with self.replay.atomic():
                    self.replay.consume_sequence(voucher)
                    item_id = None
                    applied = False
                    try:
                        item_id = self.registry.create(voucher.recipient)
                        event = ItemCreated(
                            recipient=voucher.recipient,
                            item_id=item_id,
                            sequence=voucher.sequence,
                            signer=signer,
                        )
                        self.events.emit(event)
                        applied = True
                    finally:
                        if not applied:
                            if item_id is not None:
                                self.registry.discard(item_id)
                            self.replay.rewind_sequence(voucher)
        except VoucherError as e:
            self._reject("creation", digest, e)
            raise

        audit_log.voucher_applied("creation", digest, signer, event.to_dict())
        return event

    def apply_advancement(self, voucher: AdvancementVoucher, signature: SignatureInput) -> ItemAdvanced:
        """Consume an advancement voucher and move its item to the voucher stage."""
        digest = bytes_to_hex(voucher_digest(self.domain, voucher))
        audit_log.voucher_submitted(
            "advancement", digest, item_id=voucher.item_id, stage=voucher.stage
        )

        try:
            with self.replay.item_lock(voucher.item_id):
                if not self.registry.exists(voucher.item_id):
                    raise UnknownItem(
                        f"item {voucher.item_id} does not exist",
                        required="existing item",
                        observed=str(voucher.item_id),
                    )

                signer = self._recover(voucher, signature)
                self._authorize(signer)
                self._check_expiry(voucher)
                previous = self.replay.check_stage(voucher)
                previous_aux = self.registry.auxiliary(voucher.item_id)

                with self.replay.atomic():
                    self.replay.consume_stage(voucher, previous)
                    aux_written = False
                    applied = False
                    try:
                        self.registry.set_auxiliary(voucher.item_id, {"avatar": voucher.avatar})
                        aux_written = True
                        event = ItemAdvanced(
                            item_id=voucher.item_id,
                            stage=voucher.stage,
                            avatar=voucher.avatar,
                            signer=signer,
                        )
                        self.events.emit(event)
                        applied = True
                    finally:
                        if not applied:
                            if aux_written:
                                self.registry.set_auxiliary(voucher.item_id, previous_aux)
                            self.replay.rewind_stage(voucher, previous)
        except VoucherError as e:
            self._reject("advancement", digest, e)
            raise

        audit_log.voucher_applied("advancement", digest, signer, event.to_dict())
        return event

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def current_sequence(self, identity: str) -> int:
        """Sequence the next creation voucher for `identity` must carry."""
        return self.replay.current_sequence(identity)

    def current_stage(self, item_id: int) -> int:
        """Stage the next advancement voucher for `item_id` must exceed."""
        return self.replay.current_stage(item_id)

    # ------------------------------------------------------------------

    def _authorize(self, signer: str) -> None:
        if not self.trust_oracle.is_authorized(signer):
            raise UnauthorizedSigner(
                f"{signer} does not hold signing authority",
                required="current signing authority",
                observed=signer,
            )

    def _check_expiry(self, voucher: Voucher) -> None:
        now = self.clock()
        if now >= voucher.expires_at:
            raise VoucherExpired(
                f"voucher expired at {voucher.expires_at}",
                required=f"now < {voucher.expires_at}",
                observed=f"now = {now}",
            )

    def _reject(self, kind: str, digest: str, error: VoucherError) -> None:
        audit_log.voucher_rejected(kind, digest, error.code.value, error.message)
        if error.code in SECURITY_FAILURES:
            audit_log.security_event(
                "voucher_signature_rejected",
                severity="medium",
                kind=kind,
                digest=digest,
                failure_code=error.code.value,
            )
