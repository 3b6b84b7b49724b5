"""
Allocation Coordinator Tests
============================
End-to-end lifecycle through the in-process signing oracle:
submission, oracle-gated reveal, zone accumulation and every rejection path.
"""

import random

import pytest

from conftest import ADMIN, FARMER, ORACLE, OTHER_FARMER, TARGET_ZONE
from water_allocation_he.coordinator.allocation_coordinator import (
    AllocationCoordinator,
    build_local_system,
)
from water_allocation_he.core.allocation_accumulator import zone_hash
from water_allocation_he.core.correlator import CorrelationFlow, CorrelationStatus
from water_allocation_he.core.events import EventType
from water_allocation_he.core.exceptions import (
    AlreadyProcessed,
    DecryptionNotExpired,
    DecryptionPending,
    DuplicateCallback,
    InvalidProof,
    InvalidRequest,
    MalformedCleartext,
    NotFound,
    Unauthorized,
    ZoneNotFound,
)
from water_allocation_he.core.fhe_engine import PlaintextMirrorAlgebra
from water_allocation_he.core.oracle_gateway import encode_cleartext
from water_allocation_he.core.oracle_signing import JobStatus
from water_allocation_he.core.request_ledger import RequestState


def submit(coordinator, demand, priority, zone=None, caller=FARMER):
    algebra = coordinator.algebra
    return coordinator.submit_request(caller, algebra.encrypt(demand), algebra.encrypt(priority), zone)


def forge(proof: bytes) -> bytes:
    return proof[:-1] + bytes([proof[-1] ^ 0xFF])


def reveal_zone(coordinator, oracle, zone):
    oracle.fulfill(coordinator.request_zone_decryption(ADMIN, zone))
    return coordinator.get_revealed_allocation(zone).total


class TestSetup:

    def test_coordinator_rejects_private_algebra(self, coordinator):
        with pytest.raises(ValueError, match="secret key"):
            AllocationCoordinator(PlaintextMirrorAlgebra(), coordinator.gateway)

    def test_public_algebra_cannot_decrypt(self, coordinator):
        handle = coordinator.algebra.encrypt(5)
        with pytest.raises(ValueError, match="Cannot decrypt"):
            coordinator.algebra.decrypt(handle)

    def test_is_available(self, coordinator):
        assert coordinator.is_available()
        assert coordinator.verify_security()['coordinator_has_secret_key'] is False

    def test_default_system_uses_mirror_backend(self):
        coordinator, oracle = build_local_system()
        assert coordinator.algebra.scheme == "mirror-u32"
        assert oracle.algebra.is_private()


class TestSubmission:

    def test_ids_start_at_one(self, coordinator):
        assert [submit(coordinator, d, 1) for d in (5, 6, 7)] == [1, 2, 3]

    def test_fresh_request_reads_zero(self, coordinator):
        request_id = submit(coordinator, 5, 2)
        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)
        assert coordinator.get_request_state(request_id) == RequestState.CREATED

    def test_default_zone(self, coordinator):
        request_id = submit(coordinator, 5, 2)
        assert coordinator.get_request(request_id).zone == TARGET_ZONE

    def test_uninitialized_handle_rejected(self, coordinator):
        empty = coordinator.algebra.deserialize(b"")
        with pytest.raises(ValueError, match="initialized"):
            coordinator.submit_request(FARMER, empty, coordinator.algebra.encrypt(1))
        assert len(coordinator.ledger) == 0

    def test_unknown_request_not_found(self, coordinator):
        with pytest.raises(NotFound):
            coordinator.get_decrypted_request(0)
        with pytest.raises(NotFound):
            coordinator.get_decrypted_request(1)


class TestRequestDecryption:

    def test_happy_path(self, coordinator, oracle):
        """submit(5, 2) -> reveal -> (5, 2, True) and the zone grows by 5"""
        request_id = submit(coordinator, 5, 2)
        callback_id = coordinator.request_decryption(FARMER, request_id)
        assert coordinator.get_request_state(request_id) == RequestState.DECRYPTION_REQUESTED

        assert oracle.fulfill(callback_id) == (5, 2, True)

        assert coordinator.get_decrypted_request(request_id) == (5, 2, True)
        assert coordinator.get_request_state(request_id) == RequestState.DECRYPTED
        assert coordinator.correlator.get(callback_id).status == CorrelationStatus.RESOLVED
        assert reveal_zone(coordinator, oracle, TARGET_ZONE) == 5

    def test_callback_id_comes_from_oracle(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        callback_id = coordinator.request_decryption(FARMER, request_id)

        assert oracle.pending() == [callback_id]
        entry = coordinator.correlator.get(callback_id)
        assert entry.flow == CorrelationFlow.REQUEST
        assert entry.domain_id == request_id

    def test_only_submitter_may_request(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        with pytest.raises(Unauthorized):
            coordinator.request_decryption(OTHER_FARMER, request_id)
        assert oracle.pending() == []
        assert coordinator.get_request_state(request_id) == RequestState.CREATED

    def test_second_request_while_in_flight(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        coordinator.request_decryption(FARMER, request_id)

        with pytest.raises(DecryptionPending):
            coordinator.request_decryption(FARMER, request_id)
        assert len(oracle.pending()) == 1

    def test_request_after_decryption_rejected(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        oracle.fulfill(coordinator.request_decryption(FARMER, request_id))

        with pytest.raises(AlreadyProcessed):
            coordinator.request_decryption(FARMER, request_id)

    def test_request_unknown_id(self, coordinator):
        with pytest.raises(NotFound):
            coordinator.request_decryption(FARMER, 42)

    def test_forged_proof_leaves_state_untouched(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        callback_id = coordinator.request_decryption(FARMER, request_id)
        cleartext, proof = oracle.produce_response(callback_id)

        with pytest.raises(InvalidProof):
            coordinator.resolve_request_decryption(ORACLE, callback_id, cleartext, forge(proof))

        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)
        assert coordinator.accumulator.zones() == []
        assert coordinator.correlator.get(callback_id).status == CorrelationStatus.PENDING

    def test_altered_cleartext_rejected(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        callback_id = coordinator.request_decryption(FARMER, request_id)
        _, proof = oracle.produce_response(callback_id)

        with pytest.raises(InvalidProof):
            coordinator.resolve_request_decryption(ORACLE, callback_id, encode_cleartext(500, 2), proof)
        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)

    def test_proof_bound_to_its_callback(self, coordinator, oracle):
        first = coordinator.request_decryption(FARMER, submit(coordinator, 5, 2))
        second_id = submit(coordinator, 5, 2)
        second = coordinator.request_decryption(FARMER, second_id)
        cleartext, proof = oracle.produce_response(first)

        with pytest.raises(InvalidProof):
            coordinator.resolve_request_decryption(ORACLE, second, cleartext, proof)
        assert coordinator.get_decrypted_request(second_id) == (0, 0, False)

    def test_replay_rejected(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        callback_id = coordinator.request_decryption(FARMER, request_id)
        cleartext, proof = oracle.produce_response(callback_id)
        coordinator.resolve_request_decryption(ORACLE, callback_id, cleartext, proof)
        total_before = coordinator.get_encrypted_allocation(TARGET_ZONE)

        with pytest.raises(AlreadyProcessed):
            coordinator.resolve_request_decryption(ORACLE, callback_id, cleartext, proof)

        assert coordinator.get_decrypted_request(request_id) == (5, 2, True)
        assert coordinator.get_encrypted_allocation(TARGET_ZONE) is total_before
        assert coordinator.accumulator.contribution_count(TARGET_ZONE) == 1

    def test_unknown_callback_rejected(self, coordinator):
        request_id = submit(coordinator, 5, 2)
        with pytest.raises(InvalidRequest):
            coordinator.resolve_request_decryption(ORACLE, "not-a-callback", encode_cleartext(5, 2), b"x")
        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)

    def test_only_oracle_may_resolve(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        callback_id = coordinator.request_decryption(FARMER, request_id)
        cleartext, proof = oracle.produce_response(callback_id)

        with pytest.raises(Unauthorized):
            coordinator.resolve_request_decryption(FARMER, callback_id, cleartext, proof)
        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)

    def test_malformed_cleartext_rejected(self, coordinator, oracle):
        """A verified cleartext with the wrong word count is still refused"""
        request_id = submit(coordinator, 5, 2)
        callback_id = coordinator.request_decryption(FARMER, request_id)
        oracle.verify_proof = lambda cid, ct, pr: True

        with pytest.raises(MalformedCleartext):
            coordinator.resolve_request_decryption(ORACLE, callback_id, encode_cleartext(5), b"sig")
        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)

    def test_duplicate_callback_id_from_oracle(self, coordinator, oracle):
        first_id = submit(coordinator, 5, 2)
        second_id = submit(coordinator, 6, 1)
        callback_id = coordinator.request_decryption(FARMER, first_id)
        oracle.submit = lambda ciphertexts, handler: callback_id

        with pytest.raises(DuplicateCallback):
            coordinator.request_decryption(FARMER, second_id)
        assert coordinator.get_request_state(second_id) == RequestState.CREATED
        assert coordinator.correlator.get(callback_id).domain_id == first_id


class TestCancellation:

    def test_cannot_cancel_before_timeout(self, coordinator, clock):
        request_id = submit(coordinator, 5, 2)
        coordinator.request_decryption(FARMER, request_id)
        clock.advance(599)

        with pytest.raises(DecryptionNotExpired):
            coordinator.cancel_decryption(FARMER, request_id)
        assert coordinator.get_request_state(request_id) == RequestState.DECRYPTION_REQUESTED

    def test_cancel_then_late_callback_and_retry(self, coordinator, oracle, clock):
        request_id = submit(coordinator, 5, 2)
        stale = coordinator.request_decryption(FARMER, request_id)
        clock.advance(600)

        assert coordinator.stale_decryptions() == [request_id]
        assert coordinator.cancel_decryption(FARMER, request_id) == stale
        assert coordinator.get_request_state(request_id) == RequestState.CREATED

        assert oracle.pending() == []
        with pytest.raises(InvalidRequest):
            oracle.fulfill(stale)
        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)

        fresh = coordinator.request_decryption(FARMER, request_id)
        assert fresh != stale
        oracle.fulfill(fresh)
        assert coordinator.get_decrypted_request(request_id) == (5, 2, True)

    def test_cancelled_job_does_not_block_batch(self, coordinator, oracle, clock):
        request_id = submit(coordinator, 5, 2)
        stale = coordinator.request_decryption(FARMER, request_id)
        clock.advance(600)
        coordinator.cancel_decryption(FARMER, request_id)

        fresh = coordinator.request_decryption(FARMER, request_id)
        other = coordinator.request_decryption(OTHER_FARMER, submit(coordinator, 9, 3, caller=OTHER_FARMER))

        assert oracle.fulfill_all() == {'fulfilled': [fresh, other], 'failed': []}
        assert coordinator.get_decrypted_request(request_id) == (5, 2, True)
        assert oracle.get_job(stale).status == JobStatus.CANCELLED
        assert coordinator.gateway.get_stats()['jobs_cancelled'] == 1

    def test_rejected_answer_does_not_stop_batch(self, coordinator, oracle):
        first_id = submit(coordinator, 5, 2)
        second_id = submit(coordinator, 7, 1)
        first = coordinator.request_decryption(FARMER, first_id)
        second = coordinator.request_decryption(FARMER, second_id)
        cleartext, proof = oracle.produce_response(first)
        coordinator.resolve_request_decryption(ORACLE, first, cleartext, proof)

        outcome = oracle.fulfill_all()

        assert outcome['fulfilled'] == [second]
        assert outcome['failed'] == [{
            'callback_id': first,
            'error': 'AlreadyProcessed',
            'detail': f"Request {first_id} already processed"
        }]
        assert oracle.failed() == [first]
        assert oracle.pending() == []
        assert coordinator.get_decrypted_request(second_id) == (7, 1, True)

    def test_cancel_without_request_in_flight(self, coordinator):
        request_id = submit(coordinator, 5, 2)
        with pytest.raises(InvalidRequest):
            coordinator.cancel_decryption(FARMER, request_id)

    def test_cancel_by_other_party(self, coordinator, clock):
        request_id = submit(coordinator, 5, 2)
        coordinator.request_decryption(FARMER, request_id)
        clock.advance(3600)

        with pytest.raises(Unauthorized):
            coordinator.cancel_decryption(OTHER_FARMER, request_id)

    def test_cancel_after_decryption(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        oracle.fulfill(coordinator.request_decryption(FARMER, request_id))

        with pytest.raises(AlreadyProcessed):
            coordinator.cancel_decryption(FARMER, request_id)

    def test_no_timeout_disables_cancellation(self, config, private_algebra, clock):
        config.decryption_timeout_seconds = None
        coordinator, _ = build_local_system(config, private_algebra, clock=clock)
        request_id = submit(coordinator, 5, 2)
        coordinator.request_decryption(FARMER, request_id)
        clock.advance(10 ** 9)

        assert coordinator.stale_decryptions() == []
        with pytest.raises(DecryptionNotExpired):
            coordinator.cancel_decryption(FARMER, request_id)


class TestZoneAccumulation:

    def test_zone_total_matches_plaintext_mirror(self, coordinator, oracle):
        rng = random.Random(7)
        zones = [TARGET_ZONE, "north-valley", "river-delta"]
        mirror = {zone: 0 for zone in zones}

        for i in range(12):
            zone = zones[i % 3]
            demand = rng.randint(0, 10_000)
            request_id = submit(coordinator, demand, rng.randint(1, 5), zone)
            oracle.fulfill(coordinator.request_decryption(FARMER, request_id))
            mirror[zone] += demand

        assert coordinator.accumulator.zones() == zones
        for zone in zones:
            assert reveal_zone(coordinator, oracle, zone) == mirror[zone]

    def test_total_wraps_modulo_2_32(self, coordinator, oracle):
        for demand in (2 ** 32 - 1, 3):
            oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, demand, 1)))
        assert reveal_zone(coordinator, oracle, TARGET_ZONE) == 2

    def test_unrevealed_requests_do_not_contribute(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 40, 1)))
        submit(coordinator, 1000, 1)
        coordinator.request_decryption(FARMER, submit(coordinator, 2000, 1))

        assert reveal_zone(coordinator, oracle, TARGET_ZONE) == 40

    def test_zone_created_lazily(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2, zone="east")
        assert not coordinator.accumulator.is_initialized("east")
        with pytest.raises(ZoneNotFound):
            coordinator.get_encrypted_allocation("east")

        oracle.fulfill(coordinator.request_decryption(FARMER, request_id))
        assert coordinator.accumulator.zones() == ["east"]


class TestZoneDecryption:

    def test_reveal_records_total_and_contributions(self, coordinator, oracle):
        for demand in (10, 20):
            oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, demand, 1)))

        callback_id = coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)
        entry = coordinator.correlator.get(callback_id)
        assert entry.flow == CorrelationFlow.ZONE
        assert entry.domain_id == zone_hash(TARGET_ZONE)

        reveal = oracle.fulfill(callback_id)
        assert reveal.total == 30
        assert reveal.contributions == 2
        assert coordinator.get_revealed_allocation(TARGET_ZONE) == reveal

    def test_only_admin_may_request(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        with pytest.raises(Unauthorized):
            coordinator.request_zone_decryption(FARMER, TARGET_ZONE)

    def test_unknown_zone(self, coordinator):
        with pytest.raises(ZoneNotFound):
            coordinator.request_zone_decryption(ADMIN, "nowhere")

    def test_not_yet_revealed(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        with pytest.raises(NotFound):
            coordinator.get_revealed_allocation(TARGET_ZONE)

    def test_zone_replay_rejected(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        callback_id = coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)
        cleartext, proof = oracle.produce_response(callback_id)
        coordinator.resolve_zone_decryption(ORACLE, callback_id, cleartext, proof)

        with pytest.raises(AlreadyProcessed):
            coordinator.resolve_zone_decryption(ORACLE, callback_id, cleartext, proof)

    def test_zone_forged_proof(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        callback_id = coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)
        cleartext, proof = oracle.produce_response(callback_id)

        with pytest.raises(InvalidProof):
            coordinator.resolve_zone_decryption(ORACLE, callback_id, cleartext, forge(proof))
        with pytest.raises(NotFound):
            coordinator.get_revealed_allocation(TARGET_ZONE)

    def test_callbacks_cannot_cross_flows(self, coordinator, oracle):
        """A request callback id is never accepted as a zone callback and vice versa"""
        request_id = submit(coordinator, 5, 1)
        request_cb = coordinator.request_decryption(FARMER, request_id)
        cleartext, proof = oracle.produce_response(request_cb)

        with pytest.raises(InvalidRequest):
            coordinator.resolve_zone_decryption(ORACLE, request_cb, cleartext, proof)
        assert coordinator.get_decrypted_request(request_id) == (0, 0, False)

        oracle.fulfill(request_cb)
        zone_cb = coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)
        cleartext, proof = oracle.produce_response(zone_cb)
        with pytest.raises(InvalidRequest):
            coordinator.resolve_request_decryption(ORACLE, zone_cb, cleartext, proof)


    def test_one_zone_reveal_in_flight(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)

        with pytest.raises(DecryptionPending):
            coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)
        assert len(coordinator.correlator.pending(CorrelationFlow.ZONE)) == 1

    def test_zone_reveal_allowed_again_after_answer(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        assert reveal_zone(coordinator, oracle, TARGET_ZONE) == 5

        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 6, 1)))
        assert reveal_zone(coordinator, oracle, TARGET_ZONE) == 11
        assert coordinator.get_stats()['zone_reveals_in_flight'] == 0

    def test_lost_zone_reveal_expires(self, coordinator, oracle, clock):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        lost = coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)
        clock.advance(599)
        assert coordinator.expire_zone_decryptions() == []

        clock.advance(1)
        fresh = coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)

        assert coordinator.correlator.get(lost).status == CorrelationStatus.CANCELLED
        assert [e.callback_id for e in coordinator.correlator.pending(CorrelationFlow.ZONE)] == [fresh]
        assert oracle.pending() == [fresh]
        with pytest.raises(InvalidRequest):
            oracle.fulfill(lost)

        assert oracle.fulfill(fresh).total == 5
        assert coordinator.get_stats()['zone_reveals_in_flight'] == 0

    def test_zone_reveals_never_expire_without_timeout(self, config, private_algebra, clock):
        config.decryption_timeout_seconds = None
        coordinator, oracle = build_local_system(config, private_algebra, clock=clock)
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 1)))
        coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)
        clock.advance(10 ** 9)

        assert coordinator.expire_zone_decryptions() == []
        with pytest.raises(DecryptionPending):
            coordinator.request_zone_decryption(ADMIN, TARGET_ZONE)


class TestCredentials:

    def test_first_contact_issues_token(self, coordinator, security_logger):
        token = coordinator.enroll(FARMER)

        assert token
        assert coordinator.enroll(FARMER, token) is None
        coordinator.authenticate(FARMER, token)
        assert security_logger.get_all_entries()[-1].operation == 'enroll'

    def test_enrolled_caller_must_present_token(self, coordinator):
        coordinator.enroll(FARMER)
        with pytest.raises(Unauthorized):
            coordinator.enroll(FARMER)
        with pytest.raises(Unauthorized):
            coordinator.authenticate(FARMER, "wrong")

    def test_unknown_caller_cannot_authenticate(self, coordinator, security_logger):
        with pytest.raises(Unauthorized):
            coordinator.authenticate(ORACLE, None)
        assert security_logger.get_all_entries()[-1].details['action'] == 'authenticate'

    def test_configured_tokens(self, config, private_algebra):
        config.caller_tokens = {ORACLE: "oracle-secret"}
        coordinator, _ = build_local_system(config, private_algebra)

        coordinator.authenticate(ORACLE, "oracle-secret")
        with pytest.raises(Unauthorized):
            coordinator.enroll(ORACLE)


class TestAuditAndEvents:

    def test_full_lifecycle_has_no_violations(self, coordinator, oracle, security_logger):
        request_id = submit(coordinator, 5, 2)
        oracle.fulfill(coordinator.request_decryption(FARMER, request_id))
        reveal_zone(coordinator, oracle, TARGET_ZONE)

        summary = security_logger.get_coordinator_summary()
        assert summary['privacy_preserved']
        assert summary['authorized_reveals'] == 2
        assert [e.operation for e in security_logger.get_entries_for_entity('oracle')] == ['oracle_decrypt'] * 2
        assert coordinator.verify_security()['privacy_preserved']

    def test_rejections_are_logged(self, coordinator, security_logger):
        request_id = submit(coordinator, 5, 2)
        with pytest.raises(Unauthorized):
            coordinator.request_decryption(OTHER_FARMER, request_id)

        rejection = security_logger.get_all_entries()[-1]
        assert rejection.entity == OTHER_FARMER
        assert rejection.operation == 'reject'
        assert rejection.details['error'] == 'Unauthorized'

    def test_event_sequence(self, coordinator, oracle):
        request_id = submit(coordinator, 5, 2)
        oracle.fulfill(coordinator.request_decryption(FARMER, request_id))

        types = [e['event_type'] for e in coordinator.get_history()]
        assert types == [
            EventType.REQUEST_SUBMITTED.value,
            EventType.DECRYPTION_REQUESTED.value,
            EventType.ZONE_ALLOCATION_UPDATED.value,
            EventType.REQUEST_DECRYPTED.value,
        ]

    def test_failed_operations_emit_nothing(self, coordinator):
        submit(coordinator, 5, 2)
        with pytest.raises(InvalidRequest):
            coordinator.resolve_request_decryption(ORACLE, "missing", b"", b"")
        assert len(coordinator.get_history()) == 1

    def test_stats(self, coordinator, oracle):
        oracle.fulfill(coordinator.request_decryption(FARMER, submit(coordinator, 5, 2)))
        submit(coordinator, 1, 1)

        stats = coordinator.get_stats()
        assert stats['requests'] == 2
        assert stats['requests_by_state'] == {
            'created': 1, 'decryption_requested': 0, 'decrypted': 1
        }
        assert stats['zones'] == 1
        assert stats['gateway']['proofs_accepted'] == 1
        assert stats['can_decrypt'] is False
