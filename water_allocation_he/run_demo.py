"""
Confidential Water Allocation - Demo Runner
===========================================
Single entry point to run the system.

Usage:
    water-allocation-he                   # Run API server
    water-allocation-he --cli             # Run CLI demo
    water-allocation-he --cli --backend tenseal
"""

import argparse
import random

from .config import AllocationConfig
from .coordinator.allocation_coordinator import build_local_system
from .core.exceptions import AlreadyProcessed, InvalidProof
from .core.security_logger import SecurityLogger


def run_cli_demo(config: AllocationConfig):
    """Run command-line demonstration"""
    print("=" * 70)
    print("Confidential Water Allocation")
    print(f"Encrypted requests, oracle-gated reveals ({config.backend} backend)")
    print("=" * 70)

    logger = SecurityLogger(config.audit_log_file)
    coordinator, oracle = build_local_system(config, security_logger=logger)
    algebra = coordinator.algebra

    # Step 1: farmers encrypt and submit
    print("\n[1] SUBMISSION")
    print("-" * 40)

    zones = [config.target_zone, "north-valley", "river-delta"]
    mirror = {zone: 0 for zone in zones}
    submitted = []
    for i in range(6):
        farmer = f"farmer_{i + 1:03d}"
        zone = zones[i % len(zones)]
        demand = random.randint(50, 500)
        priority = random.randint(1, 5)

        request_id = coordinator.submit_request(
            farmer, algebra.encrypt(demand), algebra.encrypt(priority), zone
        )
        submitted.append((request_id, farmer, zone, demand))
        print(f"  #{request_id} {farmer} -> {zone}: "
              f"{coordinator.get_request(request_id).encrypted_demand.get_display_ciphertext(24)}")

    # Step 2: each farmer asks for their own reveal, oracle answers later
    print("\n[2] DECRYPTION VIA ORACLE")
    print("-" * 40)

    callbacks = []
    for request_id, farmer, zone, demand in submitted:
        callback_id = coordinator.request_decryption(farmer, request_id)
        callbacks.append(callback_id)
        print(f"  #{request_id} in flight, callback {callback_id[:12]}...")

    outcome = oracle.fulfill_all()
    print(f"  Oracle answered {len(outcome['fulfilled'])} jobs, {len(outcome['failed'])} rejected")

    for request_id, farmer, zone, demand in submitted:
        mirror[zone] += demand
        revealed = coordinator.get_decrypted_request(request_id)
        print(f"  #{request_id} revealed {revealed} (expected demand {demand})")

    # Step 3: replay and forgery attempts
    print("\n[3] ATTACKS")
    print("-" * 40)

    cleartext, proof = oracle.produce_response(callbacks[0])
    try:
        coordinator.resolve_request_decryption(oracle.identity, callbacks[0], cleartext, proof)
    except AlreadyProcessed as e:
        print(f"  ✓ Replay rejected: {e}")

    request_id = coordinator.submit_request("farmer_x", algebra.encrypt(3), algebra.encrypt(1))
    callback_id = coordinator.request_decryption("farmer_x", request_id)
    cleartext, proof = oracle.produce_response(callback_id)
    try:
        coordinator.resolve_request_decryption(oracle.identity, callback_id, cleartext, proof[:-1] + bytes([proof[-1] ^ 0xFF]))
    except InvalidProof as e:
        print(f"  ✓ Forged proof rejected: {e}")
    print(f"  #{request_id} unchanged: {coordinator.get_decrypted_request(request_id)}")
    oracle.fulfill(callback_id)
    mirror[config.target_zone] += 3

    # Step 4: zone totals
    print("\n[4] ZONE REVEALS")
    print("-" * 40)

    admin = config.zone_administrators[0]
    for zone in coordinator.accumulator.zones():
        oracle.fulfill(coordinator.request_zone_decryption(admin, zone))
        reveal = coordinator.get_revealed_allocation(zone)
        print(f"  {zone}: {reveal.total} m³ from {reveal.contributions} requests "
              f"(plaintext mirror {mirror[zone]})")

    # Step 5: audit
    print("\n[5] SECURITY AUDIT")
    print("-" * 40)

    audit = logger.generate_audit_report()
    print(f"  Total operations logged: {audit['total_log_entries']}")
    print(f"  Authorized reveals: {audit['coordinator_privacy_audit']['authorized_reveals']}")
    print(f"  Rejected attempts: {audit['coordinator_privacy_audit']['rejections']}")
    print(f"  Violations: {len(audit['security_violations'])}")
    print(f"\n  CONCLUSION: {audit['conclusion']}")

    print("\n" + "=" * 70)
    print("Demo Complete!")
    print("=" * 70)


def run_server(config: AllocationConfig):
    """Run the API server"""
    from .server import server as server_module

    print("=" * 70)
    print("Confidential Water Allocation - API")
    print("=" * 70)
    print(f"\nStarting server on http://{config.host}:{config.port}")

    server_module.server.config = config
    server_module.run_server(host=config.host, port=config.port)


def main():
    parser = argparse.ArgumentParser(
        description="Confidential water allocation on encrypted requests"
    )
    parser.add_argument('--cli', action='store_true',
                        help='Run command-line demo (no web server)')
    parser.add_argument('--backend', choices=['mirror', 'tenseal'], default='mirror',
                        help='Ciphertext backend (default: mirror)')
    parser.add_argument('--zone', default='default',
                        help='Target zone for requests without one')
    parser.add_argument('--timeout', type=float, default=3600.0,
                        help='Seconds before an in-flight decryption may be cancelled')
    parser.add_argument('--audit-log', default=None,
                        help='Persist the audit trail as JSON lines')
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=8000,
                        help='Web server port (default: 8000)')

    args = parser.parse_args()
    config = AllocationConfig(
        target_zone=args.zone,
        backend=args.backend,
        decryption_timeout_seconds=args.timeout,
        audit_log_file=args.audit_log,
        host=args.host,
        port=args.port
    )

    if args.cli:
        run_cli_demo(config)
    else:
        run_server(config)


if __name__ == "__main__":
    main()
