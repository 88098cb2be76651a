#!/usr/bin/env python3
"""
Voucher Lifecycle Example - Issuance, Relay and Revocation

An issuer signs vouchers off-system; a relayer with no authority of its own
submits them. The example walks one item through creation and two stage
advancements, then shows that revoking the issuer's role invalidates a
voucher that was already signed.

Run with: python examples/voucher_lifecycle_example.py
"""

import json
import tempfile
from pathlib import Path

from voucherauth import (
    AdvancementVoucher,
    CreationVoucher,
    InMemoryAccessControl,
    MINTER_ROLE,
    TrustOracle,
    VoucherDomain,
    VoucherError,
    VoucherProcessor,
    VoucherSigner,
)
from voucherauth.db import Database, SqliteEventLog, SqliteItemRegistry, SqliteReplayStore
from voucherauth.logging_config import configure_logging
from voucherauth.util import now_epoch

# Well-known development keys; never use them for anything of value.
ISSUER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
COLLECTOR_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"


def build_processor(db_path: Path, roles: InMemoryAccessControl) -> VoucherProcessor:
    """Processor backed by a SQLite file so state survives restarts."""
    db = Database(db_path)
    db.init_schema()
    domain = VoucherDomain(
        chain_id=31337,
        verifying_contract="0x5FbDB2315678afecb367f032d93F642f64180aa3",
    )
    return VoucherProcessor(
        domain,
        SqliteItemRegistry(db),
        TrustOracle(roles),
        replay_store=SqliteReplayStore(db),
        event_sink=SqliteEventLog(db),
    )


def relay(processor: VoucherProcessor, bundle: dict) -> None:
    """Submit a signed bundle the way an untrusted relayer would."""
    message = bundle["typed_data"]["message"]
    if bundle["typed_data"]["primaryType"] == "CreationVoucher":
        voucher = CreationVoucher.from_message(message)
        apply = processor.apply_creation
    else:
        voucher = AdvancementVoucher.from_message(message)
        apply = processor.apply_advancement

    try:
        event = apply(voucher, bundle["signature"])
        print(f"  ✓ {json.dumps(event.to_dict())}")
    except VoucherError as e:
        print(f"  ✗ {e.code.value}: {e.message}")


def main():
    configure_logging("WARNING", json_format=False)

    issuer = VoucherSigner(ISSUER_KEY)
    collector = VoucherSigner(COLLECTOR_KEY).address

    roles = InMemoryAccessControl()
    roles.grant_role(MINTER_ROLE, issuer.address)

    with tempfile.TemporaryDirectory() as tmp:
        processor = build_processor(Path(tmp) / "vouchers.db", roles)
        domain = processor.domain
        deadline = now_epoch() + 3600

        print("Issuing creation voucher for", collector)
        sequence = processor.current_sequence(collector)
        creation = issuer.issue(
            domain, CreationVoucher(recipient=collector, sequence=sequence, expires_at=deadline)
        )
        relay(processor, creation)

        print("Relaying the same voucher again")
        relay(processor, creation)

        item_id = processor.events.query(recipient=collector)[-1].item_id
        for stage in (1, 3):
            print(f"Advancing item {item_id} to stage {stage}")
            relay(processor, issuer.issue(domain, AdvancementVoucher(
                item_id=item_id,
                stage=stage,
                avatar=f"ipfs://avatars/{item_id}/{stage}.json",
                expires_at=deadline,
            )))

        print("Issuing a stage 4 voucher, then revoking the issuer before it is relayed")
        pending = issuer.issue(domain, AdvancementVoucher(
            item_id=item_id, stage=4, avatar="", expires_at=deadline
        ))
        roles.revoke_role(MINTER_ROLE, issuer.address)
        relay(processor, pending)

        print(f"\nItem {item_id} owner: {processor.registry.owner_of(item_id)}")
        print(f"Item {item_id} stage: {processor.current_stage(item_id)}")
        print(f"Item {item_id} auxiliary: {processor.registry.auxiliary(item_id)}")


if __name__ == "__main__":
    main()
