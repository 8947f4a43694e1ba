"""
Job Kernel - identification and change-order versioning core

A transactional, append-only job history engine with:
- Race-free job identifier allocation
- Contiguous per-job change-order versions
- Approval state machine with immutable terminal records
- Atomic effective-version pointer maintenance
- Deterministic production component suggestion and validation
"""

__version__ = "0.1.0"
