"""
Contracts Module

This module defines the data types that form the contracts between
layers. All inter-layer communication MUST use these contracts. No layer
may import implementation details from another layer.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. Failures are explicit: ErrorCode, Error and Result
3. Timestamps are integer milliseconds since epoch
4. Calendar interpretation happens in the temporal layer, never here
"""
