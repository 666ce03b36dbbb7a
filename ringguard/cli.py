#!/usr/bin/env python3
"""
RingGuard Command Line Interface

Usage:
    ringguard keygen --key <file> --trust-store <file> [--kid <kid>]
    ringguard verify --callback <file> --trust-store <file>
    ringguard demo
"""

import argparse
import json
import sys


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def cmd_keygen(args):
    """Generate an oracle Ed25519 key and the matching trust store."""
    from ringguard import OracleSigningKey

    key = OracleSigningKey.generate(args.kid)
    key.to_file(args.key)
    print(f"Oracle key saved to: {args.key}", file=sys.stderr)

    trust_store = key.trust_store()
    if args.trust_store:
        save_json(trust_store, args.trust_store)
        print(f"Trust store saved to: {args.trust_store}", file=sys.stderr)
    else:
        print(json.dumps(trust_store, indent=2))
    return 0


def cmd_verify(args):
    """Check a decryption callback body against a trust store, offline."""
    from ringguard import DecryptionProof, OracleProofVerifier
    from ringguard.reveal import split_plaintexts

    callback = load_json(args.callback)
    verifier = OracleProofVerifier.from_trust_store(load_json(args.trust_store))
    proof = DecryptionProof.from_dict(callback.get("proof") or {})
    plaintexts = [int(p) for p in callback.get("plaintexts", [])]

    if not verifier.verify(callback.get("request_id", ""), plaintexts, proof):
        print(f"✗ INVALID: proof from {proof.kid or 'unknown kid'} does not verify")
        return 1

    members, score = split_plaintexts(plaintexts) if plaintexts else ([], 0)
    print(f"✓ VALID (kid={proof.kid})")
    print(f"  Ring members: {members}")
    print(f"  Risk score:   {score}")
    return 0


def cmd_demo(args):
    """Run a demonstration of RingGuard."""
    from ringguard import RingGuard

    print("=" * 60)
    print("RingGuard Demonstration")
    print("=" * 60)

    guard = RingGuard.local()
    be = guard.backend

    # Scenario 1: encrypted edges set directly
    print("\n" + "-" * 60)
    print("Scenario 1: ring 0 -> 1 -> 2 -> 0 among 4 traders")
    print("-" * 60)

    guard.initialize_matrix(4)
    for i, j in [(0, 1), (1, 2), (2, 0)]:
        guard.set_edge(i, j, be.encrypt(1))
    guard.set_edge(3, 3, be.encrypt(0))

    analysis_id = guard.run_ring_detection(be.encrypt(0))
    bundle = guard.get_encrypted_result(analysis_id)
    print(f"Analysis: {analysis_id}")
    print(f"Encrypted member slots: {len(bundle.ring_members)}")

    pending = guard.request_reveal(analysis_id)
    print(f"Reveal requested: {pending.request_id} ({pending.batch_size} ciphertexts)")
    print(f"Before callback:  {guard.get_decrypted_result(analysis_id).to_dict()}")

    guard.oracle.fulfill_all()
    result = guard.get_decrypted_result(analysis_id)
    print(f"After callback:   ring={result.ring_members} risk={result.risk_score}")

    guard.review_ring(analysis_id, "confirmed")
    print(f"Review: {guard.ring_status(analysis_id).value}")

    # Scenario 2: graph built from the ledger
    print("\n" + "-" * 60)
    print("Scenario 2: ring built from submitted trades, start node 3")
    print("-" * 60)

    trades = [(3, 4), (4, 5), (5, 3), (0, 1)]
    for n, (trader, counterparty) in enumerate(trades):
        guard.submit_transaction(
            be.encrypt(trader), be.encrypt(counterparty),
            be.encrypt(7), be.encrypt(1000 + n), be.encrypt(1700000000 + n)
        )
    guard.initialize_matrix(6)
    print(f"Ingested {guard.ingest_ledger()} trades into a 6x6 matrix")

    analysis_id = guard.run_ring_detection(be.encrypt(3))
    guard.request_reveal(analysis_id)
    guard.oracle.fulfill_all()
    result = guard.get_decrypted_result(analysis_id)
    print(f"Ring: {result.ring_members} risk={result.risk_score}")

    print(f"\nSummary: {guard.ring_summary()}")
    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="RingGuard CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ringguard demo                                        Run demonstration
  ringguard keygen -k secrets/oracle.json -t trust/oracle_trust_store.json
  ringguard verify -c callback.json -t trust/oracle_trust_store.json
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate oracle signing key")
    keygen_parser.add_argument("-k", "--key", required=True, help="Output file for the private key")
    keygen_parser.add_argument("-t", "--trust-store", help="Output file for the trust store")
    keygen_parser.add_argument("--kid", default="oracle-local-ed25519", help="Key identifier")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a decryption callback")
    verify_parser.add_argument("-c", "--callback", required=True, help="Callback body JSON file")
    verify_parser.add_argument("-t", "--trust-store", required=True, help="Trust store JSON file")

    # demo
    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args()

    if args.command == "keygen":
        sys.exit(cmd_keygen(args))
    elif args.command == "verify":
        sys.exit(cmd_verify(args))
    elif args.command == "demo":
        sys.exit(cmd_demo(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
