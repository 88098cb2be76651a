#!/usr/bin/env python3
"""
voucherauth Command Line Interface

Usage:
    voucherauth domain [--chain-id N --contract ADDR]
    voucherauth keygen --output <file>
    voucherauth issue-creation --key <file> --recipient ADDR --sequence N
    voucherauth issue-advancement --key <file> --item-id N --stage N [--avatar URI]
    voucherauth hash --file <bundle>
    voucherauth verify --file <bundle> [--signer ADDR]
    voucherauth demo
"""

import argparse
import json
import sys

from . import config
from .util import load_json, save_json


def _domain_from_args(args):
    from voucherauth import VoucherDomain

    return VoucherDomain(
        chain_id=args.chain_id,
        verifying_contract=args.contract,
        name=args.name,
        version=args.domain_version,
    )


def _expires_at(args) -> int:
    from voucherauth.util import now_epoch

    if args.expires_at is not None:
        return args.expires_at
    return now_epoch() + args.ttl


def _emit(data: dict, output):
    if output:
        save_json(data, output)
        print(f"Saved to: {output}", file=sys.stderr)
    else:
        print(json.dumps(data, indent=2))


def cmd_domain(args):
    """Show the domain parameters and separator."""
    domain = _domain_from_args(args)
    data = domain.to_dict()
    data["separator"] = domain.separator_hex
    print(json.dumps(data, indent=2))


def cmd_keygen(args):
    """Generate a voucher signing key."""
    from voucherauth import VoucherSigner

    signer = VoucherSigner.generate()
    _emit(signer.to_key_file_dict(), args.output)
    print(f"\nSigner address: {signer.address}", file=sys.stderr)


def cmd_issue_creation(args):
    """Sign a creation voucher."""
    from voucherauth import CreationVoucher, VoucherSigner

    signer = VoucherSigner.from_key_file(args.key)
    voucher = CreationVoucher(
        recipient=args.recipient,
        sequence=args.sequence,
        expires_at=_expires_at(args),
    )
    _emit(signer.issue(_domain_from_args(args), voucher), args.output)


def cmd_issue_advancement(args):
    """Sign an advancement voucher."""
    from voucherauth import AdvancementVoucher, VoucherSigner

    signer = VoucherSigner.from_key_file(args.key)
    voucher = AdvancementVoucher(
        item_id=args.item_id,
        stage=args.stage,
        avatar=args.avatar,
        expires_at=_expires_at(args),
    )
    _emit(signer.issue(_domain_from_args(args), voucher), args.output)


def cmd_hash(args):
    """Compute the hashes of a typed-data document or voucher bundle."""
    from voucherauth import VoucherDomain, struct_hash, voucher_from_typed_data
    from voucherauth.hashing import typed_data_digest

    data = load_json(args.file)
    typed = data.get("typed_data", data)

    domain = VoucherDomain.from_dict(typed["domain"])
    voucher = voucher_from_typed_data(typed)
    s_hash = struct_hash(voucher)

    print(f"domain_separator: {domain.separator_hex}")
    print(f"struct_hash: 0x{s_hash.hex()}")
    print(f"digest: 0x{typed_data_digest(domain.separator, s_hash).hex()}")


def cmd_verify(args):
    """Recover the signer of a voucher bundle."""
    from voucherauth import VoucherDomain, VoucherError, recover_signer, voucher_digest, voucher_from_typed_data
    from voucherauth.util import is_zero_address

    bundle = load_json(args.file)
    typed = bundle["typed_data"]
    domain = VoucherDomain.from_dict(typed["domain"])
    voucher = voucher_from_typed_data(typed)

    try:
        signer = recover_signer(voucher_digest(domain, voucher), bundle["signature"])
    except VoucherError as e:
        print(f"✗ {e.code.value}: {e.message}")
        return 1

    if is_zero_address(signer):
        print("✗ UNAUTHORIZED_SIGNER: signature recovers to the zero address")
        return 1

    if args.signer and signer.lower() != args.signer.lower():
        print(f"✗ signer mismatch: recovered {signer}, expected {args.signer}")
        return 1

    print(f"✓ {type(voucher).__name__} signed by {signer}")
    return 0


def cmd_demo(args):
    """Run a demonstration of the voucher pipeline."""
    from voucherauth import (
        AdvancementVoucher,
        CreationVoucher,
        InMemoryAccessControl,
        InMemoryItemRegistry,
        MINTER_ROLE,
        TrustOracle,
        VoucherError,
        VoucherProcessor,
        VoucherSigner,
    )

    print("=" * 60)
    print("Voucher Authorization Demonstration")
    print("=" * 60)

    now = 1_700_000_000
    domain = _domain_from_args(args)
    issuer = VoucherSigner.generate()
    stranger = VoucherSigner.generate()
    recipient = VoucherSigner.generate().address

    roles = InMemoryAccessControl()
    roles.grant_role(MINTER_ROLE, issuer.address)
    processor = VoucherProcessor(
        domain, InMemoryItemRegistry(), TrustOracle(roles), clock=lambda: now
    )

    print(f"\nDomain separator: {domain.separator_hex}")
    print(f"Issuer: {issuer.address}")
    print(f"Recipient: {recipient}")

    def attempt(title, apply, voucher, signer):
        print("\n" + "-" * 60)
        print(title)
        print("-" * 60)
        try:
            event = apply(voucher, signer.sign(domain, voucher))
            print(f"Applied: {json.dumps(event.to_dict())}")
        except VoucherError as e:
            print(f"Rejected: {e.code.value}")
            print(f"  Required: {e.required}")
            print(f"  Observed: {e.observed}")

    creation = CreationVoucher(recipient=recipient, sequence=0, expires_at=now + 3600)
    attempt("Scenario 1: Creation voucher from the issuer", processor.apply_creation, creation, issuer)
    attempt("Scenario 2: Same creation voucher replayed", processor.apply_creation, creation, issuer)
    attempt(
        "Scenario 3: Creation voucher from an unauthorized key",
        processor.apply_creation,
        CreationVoucher(recipient=recipient, sequence=1, expires_at=now + 3600),
        stranger,
    )
    attempt(
        "Scenario 4: Advance item 0 to stage 2",
        processor.apply_advancement,
        AdvancementVoucher(item_id=0, stage=2, avatar="ipfs://stage-2", expires_at=now + 3600),
        issuer,
    )
    attempt(
        "Scenario 5: Attempt to move item 0 back to stage 1",
        processor.apply_advancement,
        AdvancementVoucher(item_id=0, stage=1, avatar="ipfs://stage-1", expires_at=now + 3600),
        issuer,
    )

    print("\n" + "=" * 60)
    print(f"Next sequence for recipient: {processor.current_sequence(recipient)}")
    print(f"Stage of item 0: {processor.current_stage(0)}")
    print("Demonstration complete.")
    print("=" * 60)


def _add_domain_args(parser):
    parser.add_argument("--chain-id", type=int, default=int(config.CHAIN_ID), help="Chain id")
    parser.add_argument("--contract", default=config.VERIFYING_CONTRACT, help="Verifying contract address")
    parser.add_argument("--name", default=config.DOMAIN_NAME, help="Domain name")
    parser.add_argument("--domain-version", default=config.DOMAIN_VERSION, help="Domain version")


def _add_expiry_args(parser):
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--expires-at", type=int, help="Absolute deadline (Unix seconds)")
    group.add_argument("--ttl", type=int, default=3600, help="Seconds from now until expiry")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Voucher authorization CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voucherauth demo                                    Run demonstration
  voucherauth keygen -o issuer.json
  voucherauth issue-creation -k issuer.json --recipient 0x... --sequence 0 -o v.json
  voucherauth verify -f v.json --signer 0x...
  voucherauth hash -f v.json
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # domain
    domain_parser = subparsers.add_parser("domain", help="Show domain separator")
    _add_domain_args(domain_parser)

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate signing key")
    keygen_parser.add_argument("-o", "--output", help="Output key file")

    # issue-creation
    creation_parser = subparsers.add_parser("issue-creation", help="Sign a creation voucher")
    creation_parser.add_argument("-k", "--key", required=True, help="Signer key file")
    creation_parser.add_argument("--recipient", required=True, help="Recipient address")
    creation_parser.add_argument("--sequence", type=int, required=True, help="Recipient sequence")
    creation_parser.add_argument("-o", "--output", help="Output bundle file")
    _add_expiry_args(creation_parser)
    _add_domain_args(creation_parser)

    # issue-advancement
    advance_parser = subparsers.add_parser("issue-advancement", help="Sign an advancement voucher")
    advance_parser.add_argument("-k", "--key", required=True, help="Signer key file")
    advance_parser.add_argument("--item-id", type=int, required=True, help="Item id")
    advance_parser.add_argument("--stage", type=int, required=True, help="Target stage (0-255)")
    advance_parser.add_argument("--avatar", default="", help="Avatar URI")
    advance_parser.add_argument("-o", "--output", help="Output bundle file")
    _add_expiry_args(advance_parser)
    _add_domain_args(advance_parser)

    # hash
    hash_parser = subparsers.add_parser("hash", help="Compute voucher hashes")
    hash_parser.add_argument("-f", "--file", required=True, help="Voucher bundle or typed-data file")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Recover voucher signer")
    verify_parser.add_argument("-f", "--file", required=True, help="Voucher bundle file")
    verify_parser.add_argument("-s", "--signer", help="Expected signer address")

    # demo
    demo_parser = subparsers.add_parser("demo", help="Run demonstration")
    _add_domain_args(demo_parser)

    args = parser.parse_args(argv)

    if args.command == "domain":
        cmd_domain(args)
    elif args.command == "keygen":
        cmd_keygen(args)
    elif args.command == "issue-creation":
        cmd_issue_creation(args)
    elif args.command == "issue-advancement":
        cmd_issue_advancement(args)
    elif args.command == "hash":
        cmd_hash(args)
    elif args.command == "verify":
        sys.exit(cmd_verify(args))
    elif args.command == "demo":
        cmd_demo(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
