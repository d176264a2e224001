"""
Integration tests for ingest -> plan -> monitor -> rollback flows.

These tests validate end-to-end behavior when upstream workflow and strategy
plans flow through the execution pipeline, ensuring correct plan state
management, safety gating, emergency stop behavior, rollback generation and
audit logging.

NOT unit tests of individual components; INTEGRATION tests of system behavior.
"""
